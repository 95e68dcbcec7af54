"""Key migration: replace legacy app ECDSA keys with a new key."""

import typer

from nomad_setup.core.config import load_settings
from nomad_setup.core.keys import (
    ProvisionOptions,
    ResolutionError,
    decode_key,
    provision_key,
    prune_legacy_keys,
    resolve_target,
)
from nomad_setup.utils.output import error, info, ok, section, warn


def migrate_key(
    pubkey: str = typer.Option(None, "--pubkey", help="Full public key line (ssh-ed25519 ...)"),
    pubkey_b64: str = typer.Option(None, "--pubkey-b64", help="Base64-encoded public key line"),
    comment_prefix: str = typer.Option(
        None, "--comment-prefix", help="Prefix identifying legacy Nomad keys (default: Nomad-)"
    ),
    no_prune: bool = typer.Option(
        False, "--no-prune", help="Keep legacy ecdsa-sha2-nistp256 lines (default prunes)"
    ),
) -> None:
    """Authorize a new app key and remove legacy Nomad ECDSA keys.

    A timestamped backup of authorized_keys is saved before any change.
    Without a key, legacy keys are only pruned.

    Examples:
        nomad-setup migrate-key --pubkey "ssh-ed25519 AAAA... Nomad-phone"
        nomad-setup migrate-key --pubkey-b64 c3NoLWVkMjU1MTkg... --no-prune
    """
    section("Nomad Key Migration")
    settings = load_settings()
    prefix = comment_prefix if comment_prefix is not None else settings.comment_prefix
    prune = not no_prune

    key_line = pubkey.strip() if pubkey else None
    if not key_line and pubkey_b64:
        key_line = decode_key(pubkey_b64)
        if key_line is None:
            error("Unable to decode --pubkey-b64.")
            raise typer.Exit(1)

    if not key_line and not prune:
        error("Missing --pubkey or --pubkey-b64.")
        raise typer.Exit(1)

    try:
        target = resolve_target(settings)
    except ResolutionError as e:
        error(str(e))
        raise typer.Exit(1) from None

    info(f"Updating {target.authorized_keys} (user: {target.account})")

    try:
        if key_line:
            result = provision_key(
                target,
                key_line,
                ProvisionOptions(prune=prune, prune_prefix=prefix, backup=True),
            )
        else:
            warn("No public key supplied; only removing legacy keys")
            result = prune_legacy_keys(target, prefix, backup=True)
    except ValueError as e:
        error(str(e))
        raise typer.Exit(1) from None
    except OSError as e:
        error(f"Could not update {target.authorized_keys}: {e}")
        raise typer.Exit(1) from None

    if result.backup:
        info(f"Backup saved: {result.backup}")
    if prune:
        info(f"Removed {len(result.pruned)} legacy Nomad ECDSA key(s) (prefix: {prefix})")

    if key_line:
        if result.added:
            ok("Added new public key.")
        else:
            info("Public key already present.")
