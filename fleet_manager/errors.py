class ReconcileError(Exception):
    """
    Base class for errors raised while reconciling a cluster.
    """


class InconsistentStateError(ReconcileError):
    """
    Raised when the remote state of a cluster contradicts itself.
    """
    def __init__(self, cluster_id, message):
        self.cluster_id = cluster_id
        super().__init__(f"cluster {cluster_id}: {message}")


class ClusterDNSNotResolvedError(ReconcileError):
    """
    Raised when an operation requires the DNS of a cluster that is not yet known.
    """
    def __init__(self, cluster_id):
        self.cluster_id = cluster_id
        super().__init__(f"cluster {cluster_id}: dns is not yet known")


class IdentityProviderNotFoundError(ReconcileError):
    """
    Raised when an identity provider reported as existing cannot be found.
    """
    def __init__(self, cluster_id, name):
        self.cluster_id = cluster_id
        self.name = name
        super().__init__(
            f"cluster {cluster_id}: identity provider '{name}' reported as "
            "existing but not found"
        )
