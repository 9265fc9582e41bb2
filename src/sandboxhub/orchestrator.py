"""Instance orchestrator.

Composes the allocator, registry store, artifact generator and instance
runtime into create/delete/start/stop/list/get.

Each command is a sequential pipeline. There is no in-process lock: the
registry is re-read immediately before every mutating decision, and
concurrent writers must be serialized by the caller.

create:
    1. load registry, validate or allocate prefix
    2. validate or allocate port
    3. append instance (stopped), save            <- failures here leave no trace
    4. regenerate artifacts
    5. start backing process
    6. mark running, save
    7. reload proxy (non-fatal)

delete:
    1. drop the route from the route document, reload proxy
    2. stop/remove backing process
    3. remove from registry, save
    4. regenerate artifacts, reload proxy (non-fatal)
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from sandboxhub.artifacts import ArtifactGenerator
from sandboxhub.config import InstanceConfig, Settings, get_settings
from sandboxhub.core.allocator import (
    find_available_port,
    generate_unique_prefix,
    is_port_available,
    validate_prefix,
)
from sandboxhub.core.errors import (
    AlreadyRunningError,
    ConflictError,
    NotFoundError,
    NotRunningError,
    SandboxHubError,
    ValidationError,
)
from sandboxhub.core.interfaces import InstanceRuntime
from sandboxhub.core.models import (
    Instance,
    InstanceStatus,
    InstanceView,
    Registry,
    Theme,
    utc_now_iso,
)
from sandboxhub.core.theme import primary_color_for
from sandboxhub.logging_schema import LogEvent
from sandboxhub.metrics import (
    ORCHESTRATOR_OPERATION_DURATION,
    ORCHESTRATOR_OPERATIONS,
    ORCHESTRATOR_STATUS_RECONCILED,
)
from sandboxhub.runtimes import ResourceNaming, create_runtime
from sandboxhub.store import RegistryStore

logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_TCP_PORT = 65535


@contextmanager
def _track(operation: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except Exception:
        ORCHESTRATOR_OPERATIONS.labels(operation=operation, result="error").inc()
        raise
    else:
        ORCHESTRATOR_OPERATIONS.labels(operation=operation, result="success").inc()
    finally:
        ORCHESTRATOR_OPERATION_DURATION.labels(operation=operation).observe(
            time.perf_counter() - start
        )


class InstanceOrchestrator:
    """Multi-step instance lifecycle over a file-backed registry."""

    def __init__(
        self,
        config: InstanceConfig,
        store: RegistryStore,
        generator: ArtifactGenerator,
        runtime: InstanceRuntime,
        naming: ResourceNaming,
        is_available: Callable[[int], bool] = is_port_available,
    ) -> None:
        self._config = config
        self._store = store
        self._generator = generator
        self._runtime = runtime
        self._naming = naming
        self._is_available = is_available

    # =========================================================================
    # Commands
    # =========================================================================

    async def create(self, prefix: str | None = None, port: int | None = None) -> InstanceView:
        """Provision a new instance and start it.

        Raises:
            ValidationError: Malformed prefix or out-of-range port
            ConflictError: Prefix or port already in use
            AllocationExhaustedError / PortExhaustedError: Allocation failed
            BackendOperationError / ConfigIOError: A step after the first save
                failed; the instance stays registered as stopped
        """
        with _track("create"):
            registry = self._store.load()
            prefix = self._allocate_prefix(registry, prefix)
            port = self._allocate_port(registry, port)

            instance = Instance(
                prefix=prefix,
                port=port,
                container_name=self._naming.container_name(prefix),
                status=InstanceStatus.STOPPED,
                created_at=utc_now_iso(),
                theme=Theme(primary_color=primary_color_for(len(registry.instances))),
            )
            registry.instances.append(instance)
            registry.next_port = max(registry.next_port, port + 1)
            self._store.save(registry)

            try:
                self._generator.generate(registry)
                await self._runtime.start(self._naming.service_name(prefix))
            except SandboxHubError as exc:
                logger.error(
                    "Instance left stopped after failed create",
                    extra={
                        "event": LogEvent.INSTANCE_FAILED,
                        "prefix": prefix,
                        "error_code": exc.code.value,
                        "error": exc.message,
                    },
                )
                raise

            instance = self._set_status(prefix, InstanceStatus.RUNNING)
            await self._reload_router()

            logger.info(
                "Instance created",
                extra={"event": LogEvent.INSTANCE_CREATED, "prefix": prefix, "port": port},
            )
            return self.view(instance)

    async def delete(self, prefix: str) -> None:
        """Remove an instance, dropping its route before teardown.

        Raises:
            NotFoundError: Unknown prefix
        """
        with _track("delete"):
            registry = self._store.load()
            instance = self._require(registry, prefix)

            routes = registry.routes()
            routes.pop(prefix, None)
            self._generator.write_routes(routes)
            await self._reload_router()

            await self._runtime.stop(instance.container_name)

            registry = self._store.load()
            registry.instances = [i for i in registry.instances if i.prefix != prefix]
            self._store.save(registry)

            self._generator.generate(registry)
            await self._reload_router()

            logger.info(
                "Instance deleted",
                extra={"event": LogEvent.INSTANCE_DELETED, "prefix": prefix, "port": instance.port},
            )

    async def start(self, prefix: str) -> InstanceView:
        """Start a stopped instance.

        Artifacts are regenerated first so a partially configured instance
        left by a failed create can be recovered.

        Raises:
            NotFoundError: Unknown prefix
            AlreadyRunningError: Live probe reports the instance running
        """
        with _track("start"):
            registry = self._store.load()
            instance = self._require(registry, prefix)

            if await self._runtime.is_running(instance.container_name):
                if instance.status != InstanceStatus.RUNNING:
                    self._write_back({prefix: InstanceStatus.RUNNING})
                raise AlreadyRunningError(f"Instance {prefix} is already running")

            self._generator.generate(registry)
            await self._runtime.start(self._naming.service_name(prefix))

            instance = self._set_status(prefix, InstanceStatus.RUNNING)
            await self._reload_router()

            logger.info(
                "Instance started",
                extra={"event": LogEvent.INSTANCE_STARTED, "prefix": prefix},
            )
            return self.view(instance)

    async def stop(self, prefix: str) -> InstanceView:
        """Stop a running instance.

        Raises:
            NotFoundError: Unknown prefix
            NotRunningError: Live probe reports the instance not running
        """
        with _track("stop"):
            registry = self._store.load()
            instance = self._require(registry, prefix)

            if not await self._runtime.is_running(instance.container_name):
                if instance.status != InstanceStatus.STOPPED:
                    self._write_back({prefix: InstanceStatus.STOPPED})
                raise NotRunningError(f"Instance {prefix} is not running")

            await self._runtime.stop(instance.container_name)

            instance = self._set_status(prefix, InstanceStatus.STOPPED)
            await self._reload_router()

            logger.info(
                "Instance stopped",
                extra={"event": LogEvent.INSTANCE_STOPPED, "prefix": prefix},
            )
            return self.view(instance)

    # =========================================================================
    # Reads (self-healing)
    # =========================================================================

    async def list(self) -> list[InstanceView]:
        """All instances with live-probed status.

        Cached statuses that disagree with the probe are written back, and a
        route document that diverges from the registry is regenerated.
        """
        with _track("list"):
            registry = self._store.load()
            observed = await asyncio.gather(
                *(self._probe(instance) for instance in registry.instances)
            )

            corrections = {
                instance.prefix: status
                for instance, status in zip(registry.instances, observed, strict=True)
                if status is not None and status != instance.status
            }
            if corrections:
                registry = self._write_back(corrections)

            await self._heal_routes(registry)
            return [self.view(instance) for instance in registry.instances]

    async def get(self, prefix: str) -> InstanceView:
        """One instance with live-probed status.

        Raises:
            NotFoundError: Unknown prefix
        """
        with _track("get"):
            registry = self._store.load()
            instance = self._require(registry, prefix)

            status = await self._probe(instance)
            if status is not None and status != instance.status:
                registry = self._write_back({prefix: status})
                instance = registry.find(prefix) or instance.model_copy(update={"status": status})

            return self.view(instance)

    # =========================================================================
    # Helpers
    # =========================================================================

    def view(self, instance: Instance) -> InstanceView:
        scheme = self._config.url_scheme
        return InstanceView(
            prefix=instance.prefix,
            port=instance.port,
            container_name=instance.container_name,
            status=instance.status,
            url=f"{scheme}://{instance.prefix}.{self._config.local_domain}",
            external_url=f"{scheme}://{instance.prefix}.{self._config.subdomain_domain}",
            created_at=instance.created_at,
            theme=instance.theme,
        )

    def _allocate_prefix(self, registry: Registry, prefix: str | None) -> str:
        if prefix is None:
            return generate_unique_prefix(
                self._config.prefix_length,
                registry.prefixes,
                self._config.prefix_max_attempts,
            )

        if not validate_prefix(prefix, self._config.min_prefix_length):
            raise ValidationError(
                f"Invalid prefix {prefix!r}: expected at least "
                f"{self._config.min_prefix_length} lowercase letters or digits"
            )
        if registry.find(prefix) is not None:
            raise ConflictError(f"Prefix already exists: {prefix}")
        return prefix

    def _allocate_port(self, registry: Registry, port: int | None) -> int:
        if port is None:
            return find_available_port(
                self._config.default_port,
                registry.instances,
                next_port=registry.next_port,
                max_port=self._config.max_port,
                is_available=self._is_available,
            )

        if not MIN_PORT <= port <= MAX_TCP_PORT:
            raise ValidationError(f"Invalid port {port}: expected {MIN_PORT}-{MAX_TCP_PORT}")
        if port in registry.ports:
            raise ConflictError(f"Port already in use by another instance: {port}")
        if not self._is_available(port):
            raise ConflictError(f"Port already bound on this host: {port}")
        return port

    @staticmethod
    def _require(registry: Registry, prefix: str) -> Instance:
        instance = registry.find(prefix)
        if instance is None:
            raise NotFoundError(f"Instance not found: {prefix}")
        return instance

    def _set_status(self, prefix: str, status: InstanceStatus) -> Instance:
        registry = self._store.load()
        instance = self._require(registry, prefix)
        instance.status = status
        self._store.save(registry)
        return instance

    def _write_back(self, corrections: dict[str, InstanceStatus]) -> Registry:
        registry = self._store.load()
        for instance in registry.instances:
            status = corrections.get(instance.prefix)
            if status is None or status == instance.status:
                continue
            logger.info(
                "Reconciled cached status",
                extra={
                    "event": LogEvent.STATUS_RECONCILED,
                    "prefix": instance.prefix,
                    "cached": instance.status.value,
                    "observed": status.value,
                },
            )
            instance.status = status
            ORCHESTRATOR_STATUS_RECONCILED.inc()
        self._store.save(registry)
        return registry

    async def _probe(self, instance: Instance) -> InstanceStatus | None:
        """Live status, or None when the probe itself failed."""
        try:
            running = await self._runtime.is_running(instance.container_name)
        except SandboxHubError as exc:
            logger.warning(
                "Status probe failed, keeping cached status",
                extra={
                    "event": LogEvent.STATUS_PROBE_FAILED,
                    "prefix": instance.prefix,
                    "error": exc.message,
                },
            )
            return None
        return InstanceStatus.RUNNING if running else InstanceStatus.STOPPED

    async def _heal_routes(self, registry: Registry) -> None:
        if self._generator.load_routes() == registry.routes():
            return

        logger.warning(
            "Route document diverged from registry, regenerating",
            extra={"event": LogEvent.ROUTES_DIVERGED, "instances": len(registry.instances)},
        )
        try:
            self._generator.generate(registry)
        except SandboxHubError as exc:
            logger.warning("Failed to regenerate artifacts: %s", exc.message)
            return
        await self._reload_router()

    async def _reload_router(self) -> None:
        try:
            await self._runtime.reload_router()
        except SandboxHubError as exc:
            logger.warning(
                "Proxy reload failed",
                extra={"event": LogEvent.RELOAD_SKIPPED, "error": exc.message},
            )


def create_orchestrator(
    settings: Settings | None = None,
    runtime: InstanceRuntime | None = None,
) -> InstanceOrchestrator:
    """Wire an orchestrator from settings."""
    settings = settings or get_settings()
    naming = ResourceNaming(settings.runtime)
    registry_path = Path(settings.instance.registry_file)
    if not registry_path.is_absolute():
        registry_path = Path(settings.artifacts.project_root) / registry_path
    store = RegistryStore(registry_path, settings.instance.default_port)
    generator = ArtifactGenerator(
        settings.artifacts,
        naming,
        domain=settings.instance.subdomain_domain,
        default_port=settings.instance.default_port,
        backend_host=settings.proxy.backend_host,
    )
    return InstanceOrchestrator(
        settings.instance,
        store,
        generator,
        runtime or create_runtime(settings),
        naming,
    )
