"""Public key decoding and authorized_keys provisioning.

The authorized_keys file is edited whole-file: read, compute the new content,
write a temporary file next to it and rename it over the original. Concurrent
runs are not locked against each other; the last writer wins.
"""

import base64
import binascii
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from nomad_setup.core.config import DEFAULT_COMMENT_PREFIX, Settings, current_login

LEGACY_KEY_TYPE = "ecdsa-sha2-nistp256"

SSH_DIR_MODE = 0o700
KEY_FILE_MODE = 0o600


class ResolutionError(RuntimeError):
    """Raised when the target account's home directory cannot be found."""

    pass


class ProvisionStatus(Enum):
    """Outcome of provisioning a key.

    The PRUNED_* statuses mean a prune pass ran, not that it removed
    anything; ProvisionResult.pruned lists the lines actually dropped.
    """

    ADDED = "added"
    ALREADY_PRESENT = "already-present"
    PRUNED_ADDED = "pruned+added"
    PRUNED_ALREADY_PRESENT = "pruned+already-present"


@dataclass
class KeyTarget:
    """The account whose authorized_keys is being edited."""

    account: str
    home: Path
    privileged: bool = False

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"

    @property
    def authorized_keys(self) -> Path:
        return self.ssh_dir / "authorized_keys"


@dataclass
class ProvisionOptions:
    """Options for provision_key.

    prune: drop legacy ECDSA keys carrying ``prune_prefix`` in their line.
    backup: keep a timestamped copy of the file before editing it.
    """

    prune: bool = True
    prune_prefix: str = DEFAULT_COMMENT_PREFIX
    backup: bool = False


@dataclass
class PruneResult:
    """Outcome of a prune-only run."""

    path: Path
    pruned: list[str] = field(default_factory=list)
    backup: Path | None = None


@dataclass
class ProvisionResult:
    """Outcome of provision_key."""

    status: ProvisionStatus
    path: Path
    pruned: list[str] = field(default_factory=list)
    backup: Path | None = None

    @property
    def added(self) -> bool:
        """Check if the key was appended."""
        return self.status in (ProvisionStatus.ADDED, ProvisionStatus.PRUNED_ADDED)


def decode_key(blob: str | None) -> str | None:
    """Decode a base64-encoded public key line.

    Args:
        blob: Base64 text, possibly wrapped or padded with whitespace.

    Returns:
        The key line with carriage returns and trailing newlines removed, or
        None if the blob is not valid base64, not UTF-8, empty, or decodes to
        more than one line.
    """
    if not blob:
        return None
    data = "".join(blob.split())
    try:
        decoded = base64.b64decode(data, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return None

    key_line = decoded.replace("\r", "").rstrip("\n").strip()
    if not key_line or "\n" in key_line:
        return None
    return key_line


def resolve_target(settings: Settings) -> KeyTarget:
    """Resolve which account (and home) should receive a key.

    Raises:
        ResolutionError: If the account's home directory cannot be resolved.
    """
    account = settings.target_account()
    privileged = settings.privileged and account != "root"
    expanded = os.path.expanduser(f"~{account}")
    if expanded.startswith("~"):
        # Unknown to the account database; only our own home is a safe guess
        if account not in (settings.user, current_login()):
            raise ResolutionError(f"Cannot resolve home directory for user '{account}'")
        home = Path.home()
        privileged = False
    else:
        home = Path(expanded)

    return KeyTarget(account=account, home=home, privileged=privileged)


def is_legacy_key(line: str, prefix: str) -> bool:
    """Check if a line is a legacy app key that should be pruned.

    An empty prefix matches nothing.
    """
    tokens = line.split()
    if not tokens or tokens[0] != LEGACY_KEY_TYPE:
        return False
    return bool(prefix) and prefix in line


def prune_lines(lines: list[str], prefix: str) -> tuple[list[str], list[str]]:
    """Split lines into (kept, pruned), keeping the original order."""
    kept: list[str] = []
    pruned: list[str] = []
    for line in lines:
        (pruned if is_legacy_key(line, prefix) else kept).append(line)
    return kept, pruned


def has_key(lines: list[str], key_line: str) -> bool:
    """Check if key_line is present as a whole line."""
    wanted = key_line.rstrip()
    return any(line.rstrip() == wanted for line in lines)


def _chown(path: Path, account: str) -> None:
    """Give path to account (and its primary group)."""
    import pwd

    entry = pwd.getpwnam(account)
    os.chown(path, entry.pw_uid, entry.pw_gid)


def ensure_key_file(target: KeyTarget) -> Path:
    """Create ~/.ssh (0700) and authorized_keys (0600) if needed.

    Permissions are reset on every call; ownership is handed to the target
    account when running privileged on its behalf.

    Returns:
        Path to authorized_keys.
    """
    ssh_dir = target.ssh_dir
    auth_keys = target.authorized_keys

    ssh_dir.mkdir(mode=SSH_DIR_MODE, parents=True, exist_ok=True)
    ssh_dir.chmod(SSH_DIR_MODE)
    auth_keys.touch(mode=KEY_FILE_MODE, exist_ok=True)
    auth_keys.chmod(KEY_FILE_MODE)

    if target.privileged:
        _chown(ssh_dir, target.account)
        _chown(auth_keys, target.account)
    return auth_keys


def backup_key_file(target: KeyTarget, now: datetime | None = None) -> Path:
    """Copy authorized_keys to authorized_keys.bak-YYYYmmdd-HHMMSS.

    An existing backup is never overwritten; a second backup in the same
    second gets a numeric suffix (``.bak-YYYYmmdd-HHMMSS.1``).
    """
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    auth_keys = target.authorized_keys
    base_name = f"{auth_keys.name}.bak-{stamp}"
    backup = auth_keys.with_name(base_name)
    suffix = 0
    while True:
        try:
            fd = os.open(backup, os.O_WRONLY | os.O_CREAT | os.O_EXCL, KEY_FILE_MODE)
            break
        except FileExistsError:
            suffix += 1
            backup = auth_keys.with_name(f"{base_name}.{suffix}")
    with os.fdopen(fd, "wb") as dst, auth_keys.open("rb") as src:
        shutil.copyfileobj(src, dst)
    shutil.copystat(auth_keys, backup)
    if target.privileged:
        _chown(backup, target.account)
    return backup


def _read_lines(path: Path) -> list[str]:
    # Lines end at "\n" only; other line-break characters stay inside a line
    text = path.read_bytes().decode("utf-8", errors="surrogateescape")
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line.rstrip("\r") for line in lines]


def _write_lines(target: KeyTarget, lines: list[str]) -> None:
    """Atomically replace authorized_keys with lines."""
    auth_keys = target.authorized_keys
    content = "".join(f"{line}\n" for line in lines)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{auth_keys.name}.", dir=auth_keys.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        tmp_path.chmod(KEY_FILE_MODE)
        if target.privileged:
            _chown(tmp_path, target.account)
        os.replace(tmp_path, auth_keys)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def provision_key(
    target: KeyTarget,
    key_line: str,
    options: ProvisionOptions | None = None,
) -> ProvisionResult:
    """Ensure key_line is authorized for the target account. Idempotent.

    Args:
        target: Account and home directory to edit.
        key_line: Single-line public key (``algorithm material [comment]``).
        options: Prune/backup behaviour (defaults: prune with "Nomad-",
            no backup).

    Returns:
        ProvisionResult describing what changed.

    Raises:
        ValueError: If key_line is empty or spans multiple lines.
        PermissionError: If the key file cannot be created or written.
    """
    options = options or ProvisionOptions()
    key_line = key_line.strip()
    if not key_line or "\n" in key_line or "\r" in key_line:
        raise ValueError("Public key must be a single non-empty line")

    auth_keys = ensure_key_file(target)
    backup = backup_key_file(target) if options.backup else None

    original = _read_lines(auth_keys)
    lines = original
    pruned: list[str] = []
    if options.prune:
        lines, pruned = prune_lines(original, options.prune_prefix)

    present = has_key(lines, key_line)
    if not present:
        lines = lines + [key_line]

    if lines != original:
        _write_lines(target, lines)

    if options.prune:
        status = ProvisionStatus.PRUNED_ALREADY_PRESENT if present else ProvisionStatus.PRUNED_ADDED
    else:
        status = ProvisionStatus.ALREADY_PRESENT if present else ProvisionStatus.ADDED
    return ProvisionResult(status=status, path=auth_keys, pruned=pruned, backup=backup)


def prune_legacy_keys(
    target: KeyTarget,
    prefix: str = DEFAULT_COMMENT_PREFIX,
    backup: bool = True,
) -> PruneResult:
    """Remove legacy app keys without adding a new one.

    Raises:
        PermissionError: If the key file cannot be created or written.
    """
    auth_keys = ensure_key_file(target)
    backup_path = backup_key_file(target) if backup else None

    original = _read_lines(auth_keys)
    kept, pruned = prune_lines(original, prefix)
    if pruned:
        _write_lines(target, kept)
    return PruneResult(path=auth_keys, pruned=pruned, backup=backup_path)
