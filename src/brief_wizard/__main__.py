"""Run the wizard with ``python -m brief_wizard``."""

from __future__ import annotations

from .cli import run_cli

if __name__ == "__main__":  # pragma: no cover - runtime hook
    run_cli()
