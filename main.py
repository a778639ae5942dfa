"""
License Gate Entry Point.

Wires the gate's dependency graph via constructor injection, runs one
authorization pass with the CustomTkinter login dialog, and exits with
a status the host launcher can act on.  Every subsystem is wired here;
no module-level globals.

Exit codes::

    0  access granted
    1  unexpected failure
    2  access denied (roster unavailable, not authorized)
    3  sign-in cancelled

Usage::

    python main.py            # authorize
    python main.py --sign-out # forget the cached session
"""

from __future__ import annotations

import argparse
import sys
import traceback

from licensegate.config import get_config
from licensegate.logger import StructuredLogger, get_logger
from licensegate.models.enums import GateState
from licensegate.services import create_services
from licensegate.ui.login_dialog import LoginDialog

EXIT_GRANTED: int = 0
EXIT_FAILED: int = 1
EXIT_DENIED: int = 2
EXIT_CANCELLED: int = 3

# Each StructuredLogger attaches its own handlers; neither name may be a
# dotted child of the other.
APP_LOGGER_NAME: str = "licensegate"
UI_LOGGER_NAME: str = "login_dialog"


def main(argv: list[str] | None = None) -> int:
    """Application entry point: wire dependencies and run the gate."""
    parser = argparse.ArgumentParser(description="Authorize this machine's user against the roster.")
    parser.add_argument("--sign-out", action="store_true", help="delete the cached session and exit")
    args = parser.parse_args(argv)

    logger: StructuredLogger = get_logger(APP_LOGGER_NAME)

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Service container (single composition root)
    # ------------------------------------------------------------------
    services = create_services(
        config=config,
        login_prompt=LoginDialog(logger=get_logger(UI_LOGGER_NAME)),
        logger=logger,
    )
    orchestrator = services["orchestrator"]

    if args.sign_out:
        orchestrator.sign_out()
        return EXIT_GRANTED

    # ------------------------------------------------------------------
    # 3. Authorize (blocks on the login dialog when needed)
    # ------------------------------------------------------------------
    result = orchestrator.authorize()

    if result.granted and result.session is not None:
        sys.stdout.write(f"Authorized: {result.session.username}\n")
        return EXIT_GRANTED

    if result.state == GateState.CANCELLED:
        return EXIT_CANCELLED

    _show_message("Access", result.message or "Access denied.")
    return EXIT_FAILED if result.state == GateState.FAILED else EXIT_DENIED


def _show_message(title: str, message: str) -> None:
    """Display *message* in a dialog, falling back to stderr."""
    try:
        import tkinter
        from tkinter import messagebox

        root = tkinter.Tk()
        root.withdraw()
        messagebox.showwarning(title=title, message=message)
        root.destroy()
    except Exception:
        # Headless environment or missing Tcl/Tk.
        sys.stderr.write(f"{title}: {message}\n")


def _show_fatal_error(exc: BaseException) -> None:
    """Report a failure that escaped ``main()`` without crashing silently."""
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")
    _show_message("License Gate: Fatal Error", f"{type(exc).__name__}: {exc}")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        _show_fatal_error(exc)
        sys.exit(EXIT_FAILED)
