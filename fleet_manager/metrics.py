import asyncio
import collections
import functools

from aiohttp import web

from .status import phase_name


class Metric:
    # The prefix for the metric
    prefix = None
    # The suffix for the metric
    suffix = None
    # The type of the metric - info or gauge
    type = "info"
    # The description of the metric
    description = None

    def __init__(self):
        self._objs = []

    def add_obj(self, obj):
        self._objs.append(obj)

    @property
    def name(self):
        return f"{self.prefix}_{self.suffix}"

    def labels(self, obj):
        """The labels for the given object."""
        return {**self.common_labels(obj), **self.extra_labels(obj)}

    def common_labels(self, obj):
        """Common labels for the object."""
        return {}

    def extra_labels(self, obj):
        """Extra labels for the object."""
        return {}

    def value(self, obj):
        """The value for the given object."""
        return 1

    def records(self):
        """Returns the records for the metric, i.e. a list of (labels, value) tuples."""
        for obj in self._objs:
            yield self.labels(obj), self.value(obj)


class ClusterMetric(Metric):
    prefix = "fleet_manager_cluster"

    def common_labels(self, obj):
        return {
            "cluster_name": obj.metadata.name,
            "cluster_id": obj.status.cluster_id or "",
        }


class ClusterPhaseInfo(ClusterMetric):
    suffix = "phase"
    description = "Cluster lifecycle phase"

    def extra_labels(self, obj):
        return {"phase": phase_name(obj.status.phase)}


class ClusterPlacement(ClusterMetric):
    suffix = "placement"
    description = "The provider and region of the cluster"

    def extra_labels(self, obj):
        return {
            "cloud_provider": obj.spec.cloud_provider,
            "region": obj.spec.region,
            "multi_az": str(obj.spec.multi_az).lower(),
        }


class ClusterSchedulable(ClusterMetric):
    suffix = "schedulable"
    type = "gauge"
    description = "Indicates whether tenant instances can be placed on the cluster"

    def value(self, obj):
        return 1 if obj.status.schedulable else 0


class ClusterCount(Metric):
    prefix = "fleet_manager"
    suffix = "clusters"
    type = "gauge"
    description = "The number of clusters in each provider, region and phase"

    def records(self):
        counts = collections.Counter(
            (obj.spec.cloud_provider, obj.spec.region, phase_name(obj.status.phase))
            for obj in self._objs
        )
        for (provider, region, phase), count in sorted(counts.items()):
            labels = {"cloud_provider": provider, "region": region, "phase": phase}
            yield labels, count


def escape(content):
    """Escape the given content for use in metric output."""
    return content.replace("\\", r"\\").replace("\n", r"\n").replace('"', r"\"")


def format_value(value):
    """Formats a value for output, e.g. using Go formatting."""
    formatted = repr(value)
    dot = formatted.find(".")
    if value > 0 and dot > 6:
        mantissa = f"{formatted[0]}.{formatted[1:dot]}{formatted[dot + 1:]}".rstrip(
            "0."
        )
        return f"{mantissa}e+0{dot - 1}"
    else:
        return formatted


def render_openmetrics(*metrics):
    """Renders the metrics using OpenMetrics text format."""
    output = []
    for metric in metrics:
        if metric.description:
            output.append(f"# HELP {metric.name} {escape(metric.description)}\n")
        output.append(f"# TYPE {metric.name} {metric.type}\n")

        for labels, value in metric.records():
            if labels:
                labelstr = "{{{0}}}".format(
                    ",".join([f'{k}="{escape(v)}"' for k, v in sorted(labels.items())])
                )
            else:
                labelstr = ""
            output.append(f"{metric.name}{labelstr} {format_value(value)}\n")
    output.append("# EOF\n")

    return (
        "application/openmetrics-text; version=1.0.0; charset=utf-8",
        "".join(output).encode("utf-8"),
    )


METRICS = [
    ClusterPhaseInfo,
    ClusterPlacement,
    ClusterSchedulable,
    ClusterCount,
]


async def metrics_handler(store, request):
    """Produce metrics for the fleet manager."""
    metrics = [klass() for klass in METRICS]
    for cluster in await store.list_all():
        for metric in metrics:
            metric.add_obj(cluster)
    content_type, content = render_openmetrics(*metrics)
    return web.Response(headers={"Content-Type": content_type}, body=content)


async def metrics_server(store, port):
    """Launch a lightweight HTTP server to serve the metrics endpoint."""
    app = web.Application()
    app.add_routes([web.get("/metrics", functools.partial(metrics_handler, store))])

    runner = web.AppRunner(app, handle_signals=False)
    await runner.setup()

    site = web.TCPSite(runner, "0.0.0.0", port, shutdown_timeout=1.0)
    await site.start()

    # Sleep until we need to clean up
    try:
        await asyncio.Event().wait()
    finally:
        await asyncio.shield(runner.cleanup())
