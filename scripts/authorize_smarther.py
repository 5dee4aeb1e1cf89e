#!/usr/bin/env python3
"""
Smarther OAuth Authorization Script

This script runs the OAuth authorization flow with the Legrand Smarther
API, and can also show or revoke the stored authorization.

It starts a local callback listener (default http://localhost:23784/tokens),
opens the Legrand login page in your browser and saves the resulting
tokens to the configured token file (default ~/.smarther/tokens.json).

Usage:
    # Run authorization flow
    python scripts/authorize_smarther.py

    # Show current authorization status
    python scripts/authorize_smarther.py --status

    # Revoke existing authorization
    python scripts/authorize_smarther.py --revoke

Prerequisites:
    - Environment variables must be set:
        export SMARTHER_CLIENT_ID="your_client_id"
        export SMARTHER_CLIENT_SECRET="your_client_secret"
        export SMARTHER_SUBSCRIPTION_KEY="your_subscription_key"
    - The redirect URI shown by this script registered for your application
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from smarther.oauth.coordinator import OAuthCoordinator
from smarther.oauth.exceptions import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    ConfigurationError,
    FlowError,
    TokenExchangeError,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def format_time_remaining(seconds: float) -> str:
    """
    Format seconds into human-readable time remaining.

    Args:
        seconds: Number of seconds

    Returns:
        Formatted string (e.g., "2h 15m", "45m", "expired")
    """
    if seconds <= 0:
        return "expired"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    elif minutes > 0:
        return f"{minutes}m"
    else:
        return f"{int(seconds)}s"


async def authorize(open_browser: bool = True) -> int:
    """
    Run the authorization flow.

    Args:
        open_browser: Whether to automatically open browser

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    coordinator = OAuthCoordinator()
    try:
        if coordinator.is_authorized():
            status = coordinator.get_status()
            logger.info("Already authorized!")
            logger.info(
                f"   Access token expires in "
                f"{format_time_remaining(status['expires_in_seconds'])}"
            )
            logger.info("   Use --revoke to re-authorize")
            return 0

        logger.info(f"Redirect URI: {coordinator.config.redirect_uri}")
        logger.info("Starting OAuth authorization flow...")
        await coordinator.run_authorization_flow(open_browser=open_browser)

        logger.info("Authorization successful!")
        logger.info(f"   Tokens saved to: {coordinator.config.token_path}")
        return 0

    except AuthorizationTimeoutError as e:
        logger.error(f"Authorization timed out: {e}")
        return 1
    except AuthorizationDeniedError as e:
        logger.error(f"Authorization denied: {e}")
        return 1
    except FlowError as e:
        logger.error(f"Authorization failed: {e}")
        return 1
    except TokenExchangeError as e:
        logger.error(f"Token exchange failed: {e}")
        return 1
    finally:
        await coordinator.aclose()


def show_status() -> int:
    """
    Display authorization status.

    Returns:
        Exit code (0 if authorized, 1 if not authorized)
    """
    coordinator = OAuthCoordinator()
    status = coordinator.get_status()

    print(f"Token file: {coordinator.config.token_path}")
    if not status["authorized"]:
        print(f"Not authorized: {status['message']}")
        return 1

    print("Authorized")
    print(f"  Expires at: {status['expires_at']}")
    print(f"  Expires in: {format_time_remaining(status['expires_in_seconds'])}")
    if status["scope"]:
        print(f"  Scope: {status['scope']}")
    return 0


def revoke() -> int:
    """
    Revoke current authorization.

    Returns:
        Exit code (0 for success)
    """
    coordinator = OAuthCoordinator()

    if not coordinator.is_authorized():
        logger.info("No authorization found to revoke")
        return 0

    coordinator.revoke()
    logger.info("Authorization revoked")
    logger.info(f"   Token file deleted: {coordinator.config.token_path}")
    logger.info("")
    logger.info("Run this script again to re-authorize")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Smarther OAuth Authorization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Prerequisites:
  export SMARTHER_CLIENT_ID='your_client_id'
  export SMARTHER_CLIENT_SECRET='your_client_secret'
  export SMARTHER_SUBSCRIPTION_KEY='your_subscription_key'

Examples:
  # Run authorization flow
  python scripts/authorize_smarther.py

  # Revoke existing authorization
  python scripts/authorize_smarther.py --revoke
        """,
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--revoke",
        action="store_true",
        help="Revoke existing authorization and delete tokens",
    )
    group.add_argument(
        "--status",
        action="store_true",
        help="Show current authorization status",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't automatically open browser (display URL only)",
    )

    args = parser.parse_args()

    try:
        if args.revoke:
            return revoke()
        if args.status:
            return show_status()
        return asyncio.run(authorize(open_browser=not args.no_browser))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
