"""
Warden CLI - Operator commands.

Usage:
    warden keys generate --output keys.json
    warden keys rotate keys.json
    warden config show --env-file .env
    warden totp provision alice@example.com
    warden sessions reap --store myapp.stores:session_store
"""

__version__ = "0.1.0"
__cli_name__ = "warden"
