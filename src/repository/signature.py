"""Detached signature handling for annotated git tags.

A signed annotated tag object carries its ASCII-armored OpenPGP signature
appended to the tag text. The bytes before the armor are the signed payload;
they name the tagged commit in the ``object`` header, which binds the
signature to that revision. Tag objects are handled as bytes throughout so
the payload handed to GnuPG is exactly what was signed, whatever the message
encoding or line endings. Verification runs through python-gnupg against
trusted key material supplied by the caller.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import gnupg

from constants import Constants

logger = logging.getLogger(__name__)

_SIGNATURE_BEGIN = Constants.PGP_SIGNATURE_BEGIN.encode("ascii")
_OBJECT_HEADER = b"object "


@dataclass
class SignatureCheck:
    """Outcome of a signature verification."""
    valid: bool
    fingerprint: Optional[str] = None
    reason: str = ""


def split_tag_signature(raw_tag: bytes) -> Tuple[bytes, Optional[bytes]]:
    """Split a raw tag object into (signed payload, armored signature or None).

    The armor only counts when it starts a line.
    """
    if raw_tag.startswith(_SIGNATURE_BEGIN):
        return b"", raw_tag
    marker = raw_tag.find(b"\n" + _SIGNATURE_BEGIN)
    if marker == -1:
        return raw_tag, None
    return raw_tag[:marker + 1], raw_tag[marker + 1:]


def tag_target(payload: bytes) -> Optional[str]:
    """Return the object id named by the ``object`` header of a tag payload."""
    for line in payload.split(b"\n"):
        if not line:
            break  # headers end at the first blank line
        if line.startswith(_OBJECT_HEADER):
            return line[len(_OBJECT_HEADER):].strip().decode("ascii", errors="replace")
    return None


class GpgSignatureVerifier:
    """Verify detached OpenPGP signatures against trusted keys.

    Keys come from an existing GnuPG home directory, from armored public keys,
    or both. The caller's directory is only read: when armored keys are added
    to it, its public keys and the armored ones are imported into a private
    temporary keyring instead. Without a directory the user's default keyring
    is never consulted. An optional fingerprint allow-list narrows the
    accepted signers further.
    """

    def __init__(
        self,
        gnupghome: Optional[str] = None,
        trusted_keys: Iterable[str] = (),
        fingerprints: Iterable[str] = (),
        gpgbinary: str = "gpg",
    ):
        keys = [key for key in trusted_keys if key and key.strip()]
        self.keyring = gnupghome
        self._tmp_home: Optional[str] = None
        if gnupghome is None or keys:
            self._tmp_home = tempfile.mkdtemp(prefix="mirrorfetch-gnupg-")
            os.chmod(self._tmp_home, 0o700)
        self.gnupghome = self._tmp_home or gnupghome
        self.fingerprints = {self._normalize(fpr) for fpr in fingerprints if fpr}
        try:
            self._gpg = gnupg.GPG(gpgbinary=gpgbinary, gnupghome=self.gnupghome)
            if self._tmp_home and gnupghome:
                self._copy_public_keys(gnupghome, gpgbinary)
            for key in keys:
                self._import(key)
        except Exception:
            self.close()
            raise

    def _copy_public_keys(self, source_home: str, gpgbinary: str) -> None:
        """Import every public key of ``source_home`` without writing keys to it."""
        source = gnupg.GPG(gpgbinary=gpgbinary, gnupghome=source_home)
        fingerprints = [key["fingerprint"] for key in source.list_keys()]
        if fingerprints:
            self._import(source.export_keys(fingerprints))

    def _import(self, key: str) -> None:
        imported = self._gpg.import_keys(key)
        if not imported.fingerprints:
            logger.warning("No public key imported from supplied key material")
        else:
            logger.debug("Imported trusted key(s): %s", ", ".join(imported.fingerprints))

    @staticmethod
    def _normalize(fingerprint: str) -> str:
        return fingerprint.replace(" ", "").upper()

    def verify(self, revision: str, payload: bytes, signature: Optional[bytes]) -> SignatureCheck:
        """Check that ``signature`` is a valid, trusted signature over ``payload``.

        Args:
            revision: Commit the payload claims to sign; must match its ``object`` header.
            payload: Signed bytes (the tag object without its signature), passed to GnuPG unchanged.
            signature: ASCII-armored detached signature.
        """
        if not signature:
            return SignatureCheck(False, reason="no signature present")
        target = tag_target(payload)
        if target != revision:
            return SignatureCheck(
                False, reason=f"signature covers {target or 'unknown object'}, not {revision}"
            )

        fd, sig_path = tempfile.mkstemp(prefix="mirrorfetch-", suffix=".asc")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(signature)
            verified = self._gpg.verify_data(sig_path, payload)
        finally:
            os.unlink(sig_path)

        fingerprint = getattr(verified, "pubkey_fingerprint", None) or verified.fingerprint
        if not verified.valid:
            return SignatureCheck(False, fingerprint, verified.status or "invalid signature")
        if self.fingerprints:
            # Either the primary key or the signing subkey may be listed.
            signers = {self._normalize(fpr) for fpr in (fingerprint, verified.fingerprint) if fpr}
            if not signers & self.fingerprints:
                return SignatureCheck(False, fingerprint, f"signer {fingerprint} is not an allowed key")
        return SignatureCheck(True, fingerprint, verified.status or "signature valid")

    def close(self) -> None:
        """Remove the temporary keyring, if one was created."""
        if self._tmp_home:
            shutil.rmtree(self._tmp_home, ignore_errors=True)
            self._tmp_home = None

    def __enter__(self) -> "GpgSignatureVerifier":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
