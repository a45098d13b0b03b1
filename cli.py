"""
Operator commands — run with ``python -m cli <command>``.

``rotate-key`` re-encrypts every stored refresh token under a new key.  It
only migrates the data: afterwards set ``TOKEN_ENCRYPTION_KEY`` to the new
key and restart every worker, since running processes keep the key they
started with.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import config
from oauth.encryption import TokenCipher, generate_key
from oauth.exceptions import ConfigurationError, OAuthBridgeError
from oauth.token_store import TokenStorage

app = typer.Typer(no_args_is_help=True)


async def rotate_key(
    session_factory: async_sessionmaker[AsyncSession],
    old_cipher: TokenCipher,
    new_cipher: TokenCipher,
) -> int:
    """Migrate all stored envelopes from *old_cipher* to *new_cipher*."""
    storage = TokenStorage(session_factory, old_cipher)
    return await storage.reencrypt_all(new_cipher)


@app.command("rotate-key")
def rotate_key_command(
    new_key: str = typer.Option(
        ..., "--new-key", envvar="NEW_TOKEN_ENCRYPTION_KEY", help="New hex-encoded 256-bit key."
    ),
    old_key: Optional[str] = typer.Option(
        None, "--old-key", help="Current hex key (defaults to TOKEN_ENCRYPTION_KEY)."
    ),
) -> None:
    """Re-encrypt all stored refresh tokens under a new key."""
    try:
        old_cipher = TokenCipher.from_hex(old_key or config.token_encryption_key)
        new_cipher = TokenCipher.from_hex(new_key)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=2)

    from database.session import async_session_factory

    try:
        count = asyncio.run(rotate_key(async_session_factory, old_cipher, new_cipher))
    except OAuthBridgeError as exc:
        typer.echo(f"Error: {exc.message}. Nothing was changed.", err=True)
        raise typer.Exit(code=1)

    typer.echo(
        f"Re-encrypted {count} refresh tokens. Set TOKEN_ENCRYPTION_KEY to the new key "
        "and restart every worker."
    )


@app.command("generate-key")
def generate_key_command() -> None:
    """Print a fresh random key suitable for TOKEN_ENCRYPTION_KEY."""
    typer.echo(generate_key())


if __name__ == "__main__":
    app()
