#!/usr/bin/env python3
"""
common/kerberos.py
==================

Keytab based login of the gateway's own Kerberos principal. The gateway never
asks for passwords; it is expected to run with a service keytab.
"""

from __future__ import annotations

__author__ = "jslorrma"
__maintainer__ = "jslorrma"
__email__ = "jslorrma@gmail.com"

# imports
import pathlib
import re
import subprocess

from .. import PathType, logger
from .exceptions import context


def principal_from_keytab(keytab: PathType) -> str | None:
    """Read principal from `keytab` file

    Parameters
    ----------
    keytab : Union[str, pathlib.Path]
        Path to a keytab file to read the principal from.
    """
    if not pathlib.Path(keytab).exists():
        raise context.FileNotFoundError(f"keytab doesn't exist at '{keytab}'")

    _ret = subprocess.run(
        ["klist", "-k", str(keytab)], stdout=subprocess.PIPE, check=False
    )
    _out = _ret.stdout.decode()
    if _ret.returncode == 0 and "@" in _out:
        _match = re.search(r"\S*@[A-Z0-9.\-]*", _out)
        if _match:
            logger.debug(f"Principal found in keytab file '{keytab}': '{_match.group()}'")
            return _match.group()
    return None


def has_valid_ticket(principal: str) -> bool:
    """Whether the credential cache holds a valid ticket for `principal`."""
    if subprocess.run(["klist", "-s"], check=False).returncode != 0:
        return False
    _listing = subprocess.run(["klist"], stdout=subprocess.PIPE, check=False).stdout.decode()
    return principal in _listing


def kinit(keytab: PathType, principal: str | None = None) -> bool:
    """Obtain a ticket for the gateway principal from `keytab`.

    Nothing is done if a valid ticket for the principal already exists.

    Parameters
    ----------
    keytab : PathType
        Path to the gateway's keytab file.
    principal : str, optional
        The principal to log in as. Read from the keytab if not given.

    Returns
    -------
    bool
        `True` if a valid ticket is available afterwards.

    Raises
    ------
    ValueError
        If no principal is given and none could be read from the keytab.
    SubprocessError
        If `kinit` fails.
    """
    _principal = principal or principal_from_keytab(keytab)
    if not _principal:
        raise context.ValueError(f"No principal found in keytab '{keytab}'")
    if "@" not in _principal:
        raise context.ValueError(f"Missing realm in principal '{_principal}'")

    if has_valid_ticket(_principal):
        logger.debug(f"Valid ticket for '{_principal}' found, skipping kinit")
        return True

    logger.debug(f"Running 'kinit' with keytab '{keytab}' and principal '{_principal}'")
    _r = subprocess.run(
        ["kinit", "-kt", str(keytab), _principal], capture_output=True, check=False
    )
    if _r.returncode != 0:
        raise context.SubprocessError(_r.stderr.decode())
    return True
