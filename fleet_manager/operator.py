import asyncio
import logging
import sys

import kopf

from easykube import Configuration
from kube_custom_resource import CustomResourceRegistry
from pydantic.json import pydantic_encoder

from . import models
from .config import settings
from .manager import ClusterManager
from .metrics import metrics_server
from .ocm import ClusterManagementClient
from .sso import SSOClient
from .store import ClusterStore

logger = logging.getLogger(__name__)


# Create an easykube client from the environment
ekclient = (
    Configuration
        .from_environment(json_encoder = pydantic_encoder)
        .async_client(default_field_manager = settings.easykube_field_manager)
)


# Create a registry of custom resources and populate it from the models module
registry = CustomResourceRegistry(settings.api_group, settings.crd_categories)
registry.discover_models(models)


async def reconcile_loop(manager, interval):
    """
    Runs a reconciliation pass every interval seconds until cancelled.
    """
    while True:
        errors = await manager.reconcile()
        if errors:
            logger.warning("reconciliation pass completed with %d errors", len(errors))
        else:
            logger.debug("reconciliation pass completed")
        await asyncio.sleep(interval)


@kopf.on.startup()
async def on_startup(memo, **kwargs):
    """
    Applies the CRDs and starts the reconciliation loop.
    """
    # Apply the CRDs
    for crd in registry:
        try:
            await ekclient.apply_object(crd.kubernetes_resource(), force = True)
        except Exception:
            logger.exception("error applying CRD %s.%s - exiting", crd.plural_name, crd.api_group)
            sys.exit(1)
    # Give Kubernetes a chance to create the APIs for the CRDs
    await asyncio.sleep(0.5)
    # Check to see if the APIs for the CRDs are up
    # If they are not, the store cannot read or write records so we exit and get restarted
    for crd in registry:
        preferred_version = next(k for k, v in crd.versions.items() if v.storage)
        api_version = f"{crd.api_group}/{preferred_version}"
        try:
            _ = await ekclient.get(f"/apis/{api_version}/{crd.plural_name}")
        except Exception:
            logger.exception(
                "api for %s.%s not available - exiting",
                crd.plural_name,
                crd.api_group
            )
            sys.exit(1)

    store = ClusterStore(ekclient, settings)
    ocm = ClusterManagementClient.from_config(settings.cluster_management)
    sso = SSOClient.from_config(settings.sso)
    manager = ClusterManager(settings, store, ocm, sso)
    memo.clients = [ocm, sso]
    memo.tasks = [
        asyncio.create_task(reconcile_loop(manager, settings.timer_interval)),
    ]
    if settings.metrics.enabled:
        memo.tasks.append(asyncio.create_task(metrics_server(store, settings.metrics.port)))
    logger.info(
        "fleet manager started in %s scaling mode",
        "manual" if settings.data_plane.manual_scaling else "auto"
    )


@kopf.on.cleanup()
async def on_cleanup(memo, **kwargs):
    """
    Runs on operator shutdown.
    """
    tasks = getattr(memo, "tasks", [])
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions = True)
    for client in getattr(memo, "clients", []):
        await client.aclose()
    await ekclient.aclose()
