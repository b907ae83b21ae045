"""Folio application — build once, or build and keep building.

The two public functions (build, dev) are the primary entry points.
Both run the same orchestrator; ``dev`` wraps it in a Chirp app served
by Pounce, with a file watcher driving incremental rebuilds and an SSE
endpoint that tells open pages to reload.
"""

import time
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from folio.config import FolioConfig
from folio.config_loader import load_config
from folio.export.orchestrator import BuildOrchestrator, BuildReport

if TYPE_CHECKING:
    from chirp import App

    from folio.observability.collector import BuildCollector
    from folio.reactive.broadcaster import Broadcaster
    from folio.reactive.loop import WatchNotifyLoop
    from folio.reactive.session import BuildSession


def _create_chirp_app(config: FolioConfig) -> App:
    """Create the Chirp App for the dev server.

    Single worker: the session and broadcaster live in this process's
    event loop. Chirp's debug mode is left off because it runs its own
    code reloader; Folio watches the site itself.

    """
    from chirp import App, AppConfig

    app_config = AppConfig(
        debug=False,
        workers=1,
        static_dir=None,
        host=config.host,
        port=config.port,
    )
    return App(config=app_config)


def create_dev_app(
    config: FolioConfig,
    session: BuildSession,
    broadcaster: Broadcaster,
    collector: BuildCollector | None = None,
) -> App:
    """Create a Chirp App that serves the output tree with live reload."""
    from folio.content.router import OutputRouter

    app = _create_chirp_app(config)
    router = OutputRouter(app, config, session, broadcaster, collector)
    router.register()
    return app


def _reload_config(config: FolioConfig, overrides: dict[str, object] | None) -> FolioConfig:
    """Re-read the site config for a running dev server.

    Host, port and the output root stay as started: the server is bound
    and StaticFiles serves the original output directory. The watched
    directories are fixed by the running watcher.

    """
    reloaded = load_config(config.root, **(overrides or {}))
    return replace(reloaded, host=config.host, port=config.port, output=config.output)


def _start_watcher(
    config: FolioConfig,
    orchestrator: BuildOrchestrator,
    session: BuildSession,
    app: App,
    collector: BuildCollector | None = None,
    overrides: dict[str, object] | None = None,
) -> WatchNotifyLoop:
    """Wire the watch/notify loop to the app via Chirp lifecycle hooks.

    Registers ``on_startup`` / ``on_shutdown`` hooks on *app* so that the
    watcher and the build coordinator live inside the event loop managed
    by Pounce.

    Flow:
        on_startup  -> start the watcher thread and the consumer task
        file change -> debounced ChangeSet -> build_incremental (worker thread)
        on_shutdown -> cancel watching, drain the in-flight build

    A changed config file is re-read with the same *overrides* before the
    rebuild (see ``_reload_config``).

    Returns the WatchNotifyLoop (its ``fatal`` attribute tells ``dev`` why
    the server stopped, if watching broke).

    """
    from folio.content.watcher import SourceWatcher
    from folio.reactive.loop import WatchNotifyLoop

    watch_loop = WatchNotifyLoop(
        SourceWatcher(config),
        orchestrator,
        session,
        debounce_s=config.debounce_ms / 1000,
        collector=collector,
        reload_config=lambda: _reload_config(config, overrides),
    )

    @app.on_startup
    async def _start_watch_loop() -> None:
        watch_loop.start()

    @app.on_shutdown
    async def _stop_watch_loop() -> None:
        await watch_loop.stop()

    return watch_loop


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def build(root: str | Path = ".", **kwargs: object) -> BuildReport:
    """Build the site into the output directory.

    Renders every source, writes only the files whose bytes changed, and
    prints a summary to stdout.

    Args:
        root: Path to the site root directory.
        **kwargs: Override FolioConfig fields.

    Returns:
        The BuildReport of the pass.

    Raises:
        ConfigError: If the configuration or the source root is unusable.

    """
    from folio.banner import print_banner, print_build_summary

    config = load_config(Path(root), **kwargs)
    orchestrator = BuildOrchestrator(config)
    report = orchestrator.build_all()

    print_banner(config, len(orchestrator.store), mode="build", load_ms=report.duration_ms)
    print_build_summary(report, str(config.output_path))
    return report


def dev(root: str | Path = ".", **kwargs: object) -> None:
    """Build the site, then serve it and rebuild on every change.

    Runs an initial full build, starts a single-worker Pounce server that
    serves the output tree, and watches the site root. Each debounced
    change set triggers an incremental build; connected pages reload when
    the build changed at least one output file.

    Args:
        root: Path to the site root directory.
        **kwargs: Override FolioConfig fields.

    Raises:
        ConfigError: If the configuration or the source root is unusable.
        WatchError: If file watching broke while the server was running.

    """
    from folio.banner import print_banner, print_rebuild
    from folio.observability import BuildCollector, EventLog
    from folio.reactive.broadcaster import Broadcaster
    from folio.reactive.session import BuildSession

    config = load_config(Path(root), **kwargs)
    collector = BuildCollector(EventLog())
    orchestrator = BuildOrchestrator(config, collector=collector)

    t0 = time.perf_counter()
    report = orchestrator.build_all()
    load_ms = (time.perf_counter() - t0) * 1000

    session = BuildSession(report)
    broadcaster = Broadcaster(session, keepalive_s=config.keepalive_s, collector=collector)
    app = create_dev_app(config, session, broadcaster, collector)
    watch_loop = _start_watcher(config, orchestrator, session, app, collector, kwargs)

    print_banner(config, len(orchestrator.store), mode="dev", load_ms=load_ms)
    print_rebuild(report)

    # Pass the collector as Pounce's lifecycle_collector so connection
    # events flow into the same EventLog as build events.
    app.run(host=config.host, port=config.port, lifecycle_collector=collector)

    if watch_loop.fatal is not None:
        raise watch_loop.fatal
