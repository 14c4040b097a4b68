#!/usr/bin/env python3
"""Stamp Notifier — Application Runner.

Performs pre-flight checks and launches the main application.

Usage:
    python scripts/run.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

BANNER = r"""
╔══════════════════════════════════════════╗
║            Stamp Notifier v1.0           ║
║    Airtable stamps → Telegram channel    ║
╚══════════════════════════════════════════╝
"""

REQUIRED_ENV_VARS = [
    "AIRTABLE_API_KEY",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "PORT",
]

REQUIRED_FILES = [
    "config/settings.yaml",
]


def preflight_checks() -> bool:
    """Run pre-flight checks before starting the application.

    Checks:
      - .env file exists (local runs) or /etc/secrets/.env (deployed)
      - Required environment variables are set
      - Required config files exist
      - logs/ directory exists (creates it)

    Returns:
        True if all checks pass, False otherwise.
    """
    from dotenv import load_dotenv

    from stamp_notifier.config import default_env_path

    os.chdir(str(PROJECT_ROOT))
    ok = True

    env_path = default_env_path()
    if env_path.exists():
        load_dotenv(env_path)
        print(f"✅ {env_path} loaded")
    else:
        print(f"⚠️  {env_path} not found, relying on the process environment")

    for var in REQUIRED_ENV_VARS:
        val = os.environ.get(var, "")
        if not val or val in ("your_key_here", "test"):
            print(f"❌ {var} not set or invalid")
            ok = False
        else:
            masked = val[:6] + "..." + val[-4:] if len(val) > 10 else "***"
            print(f"✅ {var} = {masked}")

    for f in REQUIRED_FILES:
        if not (PROJECT_ROOT / f).exists():
            print(f"❌ {f} not found!")
            ok = False
        else:
            print(f"✅ {f} exists")

    (PROJECT_ROOT / "logs").mkdir(exist_ok=True)
    print("✅ logs/ directory ready")

    return ok


def main() -> None:
    """Entry point: run checks then start the application."""
    print(BANNER)

    print("═══ Pre-flight Checks ═══\n")
    if not preflight_checks():
        print("\n❌ Pre-flight checks failed! Fix the issues above and try again.")
        sys.exit(1)

    print("\n✅ All checks passed!\n")

    from stamp_notifier.main import main as app_main
    app_main()


if __name__ == "__main__":
    main()
