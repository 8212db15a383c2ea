from __future__ import annotations

import argparse
import signal
import sys
import threading
import webbrowser
from collections.abc import Callable

import uvicorn

from nahledovka.config.defaults import DEFAULT_BIND, DEFAULT_LOG_LEVEL, DEFAULT_PORT
from nahledovka.main import create_app

_KNOWN_COMMANDS = {"serve"}
_EXIT_SIGNALS = (signal.SIGINT, signal.SIGTERM)
_DESCRIPTION = "Nahledovka RTSP to HLS camera preview server"


def _url_for_browser(bind: str, port: int) -> str:
    host = "127.0.0.1" if bind == "0.0.0.0" else bind
    return f"http://{host}:{port}"


def _add_serve_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data-dir", default=None, help="Path for runtime data (SQLite/streams/logs/config)")
    parser.add_argument("--bind", default=DEFAULT_BIND, help=f"Bind host (default {DEFAULT_BIND})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Bind port (default {DEFAULT_PORT})")
    parser.add_argument("--ffmpeg-path", default=None, help="FFmpeg executable or its directory (default: PATH)")
    parser.add_argument("--streams-dir", default=None, help="Directory for HLS output (default <data-dir>/streams)")
    parser.add_argument("--no-open", action="store_true", help="Do not auto-open browser")
    parser.add_argument("--log-level", default=DEFAULT_LOG_LEVEL, help="Log level for the app and uvicorn")


def _build_parser(prog: str) -> argparse.ArgumentParser:
    """Parser without an explicit command; behaves like ``serve``."""
    parser = argparse.ArgumentParser(prog=prog, description=_DESCRIPTION)
    _add_serve_arguments(parser)
    return parser


def _build_command_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=_DESCRIPTION)
    subparsers = parser.add_subparsers(dest="command", required=True)
    serve = subparsers.add_parser("serve", help="Run the Nahledovka API server")
    _add_serve_arguments(serve)
    return parser


def _state_of(app: object) -> object | None:
    return getattr(getattr(app, "state", None), "nahledovka", None)


def _install_exit_handlers(handler: Callable[[int, object], None]) -> dict[int, object]:
    previous: dict[int, object] = {}
    for sig in _EXIT_SIGNALS:
        try:
            previous[sig] = signal.getsignal(sig)
            signal.signal(sig, handler)
        except (AttributeError, ValueError):
            continue
    return previous


def _restore_handlers(previous: dict[int, object]) -> None:
    for sig, handler in previous.items():
        try:
            signal.signal(sig, handler)
        except (AttributeError, ValueError):
            continue


def _run(parsed: argparse.Namespace, force_open: bool | None = None) -> int:
    should_open = not parsed.no_open if force_open is None else force_open
    if parsed.bind == "0.0.0.0":
        print("[warning] LAN access enabled. Stream URLs are unauthenticated; keep Nahledovka on trusted networks.")

    app = create_app(
        data_dir=parsed.data_dir,
        bind=parsed.bind,
        port=parsed.port,
        log_level=parsed.log_level,
        ffmpeg_path=getattr(parsed, "ffmpeg_path", None),
        streams_dir=getattr(parsed, "streams_dir", None),
    )
    url = _url_for_browser(parsed.bind, parsed.port)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=parsed.bind,
            port=parsed.port,
            log_level=parsed.log_level,
            workers=1,
            timeout_graceful_shutdown=2,
            timeout_keep_alive=1,
        )
    )
    streams_stopping = threading.Event()

    def _stop_streams() -> None:
        # Transcoders must be signalled before uvicorn waits on open connections.
        if streams_stopping.is_set():
            return
        streams_stopping.set()
        state = _state_of(app)
        if state is None:
            return
        try:
            state.begin_shutdown()
        except Exception as exc:
            print(f"[warning] stream shutdown failed: {exc}")

    def _exit_requested() -> None:
        _stop_streams()
        server.should_exit = True

    def _on_signal(signum: int, _frame: object) -> None:
        if signum in _EXIT_SIGNALS:
            _exit_requested()

    app.state.request_exit = _exit_requested
    previous_handlers = _install_exit_handlers(_on_signal)

    browser_timer: threading.Timer | None = None
    if should_open:
        browser_timer = threading.Timer(0.9, lambda: webbrowser.open(url))
        browser_timer.start()
    print(f"Nahledovka running at {url}")

    exit_code: int | None = None
    try:
        server.run()
    except KeyboardInterrupt:
        _exit_requested()
    except SystemExit as exc:
        if server.should_exit or streams_stopping.is_set():
            exit_code = 0
        else:
            exit_code = exc.code if isinstance(exc.code, int) else 1
    finally:
        _stop_streams()
        state = _state_of(app)
        if state is not None:
            try:
                state.shutdown()
            except Exception as exc:
                print(f"[warning] shutdown failed: {exc}")
        if browser_timer is not None:
            browser_timer.cancel()
            browser_timer.join(timeout=0.5)
        _restore_handlers(previous_handlers)

    if exit_code is not None:
        return exit_code
    return 0 if getattr(server, "started", False) or server.should_exit else 1


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        if args and args[0] in _KNOWN_COMMANDS:
            parsed = _build_command_parser("nahledovka").parse_args(args)
        else:
            parsed = _build_parser("nahledovka").parse_args(args)
        return _run(parsed)
    except KeyboardInterrupt:
        return 0
    except Exception as exc:
        print(f"[error] {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
