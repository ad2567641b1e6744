"""End-to-end tests against real git and gpg binaries.

A throwaway signing key and a local repository with signed release tags are
created per module; the file scheme then serves that repository as a mirror.
"""

import os
import shutil
import subprocess
import tempfile

import gnupg
import pytest

from errors import AllRemotesUnreachable, NoMatchingVersion, SignatureVerificationFailed
from repository.cloner import CloneState, clone, is_untrusted
from repository.git_client import GitClient
from repository.signature import GpgSignatureVerifier

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        shutil.which("git") is None or shutil.which("gpg") is None,
        reason="git and gpg are required",
    ),
]

RELEASES = ["v1.0.0", "v1.1.0", "v2.0.0"]


def _git(repo, *args, env=None, input_text=None):
    result = subprocess.run(
        ["git", *args], cwd=repo, env=env, input=input_text,
        capture_output=True, text=True, check=True,
    )
    return result.stdout.strip()


@pytest.fixture(scope="module")
def signing_key():
    # gpg-agent sockets live in the home directory; keep the path short.
    home = tempfile.mkdtemp(prefix="mf-gpg-")
    os.chmod(home, 0o700)
    gpg = gnupg.GPG(gnupghome=home)
    key_input = gpg.gen_key_input(
        key_type="RSA",
        key_length=2048,
        name_real="Release Bot",
        name_email="release@example.com",
        no_protection=True,
    )
    key = gpg.gen_key(key_input)
    if not key.fingerprint:
        shutil.rmtree(home, ignore_errors=True)
        pytest.skip(f"gpg could not generate a key: {key.stderr}")
    try:
        yield {"home": home, "fingerprint": key.fingerprint, "public": gpg.export_keys(key.fingerprint)}
    finally:
        subprocess.run(["gpgconf", "--kill", "gpg-agent"], env=dict(os.environ, GNUPGHOME=home),
                       capture_output=True, check=False)
        shutil.rmtree(home, ignore_errors=True)


@pytest.fixture(scope="module")
def mirror(signing_key, tmp_path_factory):
    """A data directory holding ``repo`` with signed tags for every release."""
    data_dir = tmp_path_factory.mktemp("mirrors")
    repo = str(data_dir / "repo")
    home = str(tmp_path_factory.mktemp("home"))
    env = dict(
        os.environ,
        HOME=home,
        GNUPGHOME=signing_key["home"],
        GIT_CONFIG_NOSYSTEM="1",
        GIT_AUTHOR_NAME="Release Bot",
        GIT_AUTHOR_EMAIL="release@example.com",
        GIT_COMMITTER_NAME="Release Bot",
        GIT_COMMITTER_EMAIL="release@example.com",
    )
    os.makedirs(repo)
    _git(repo, "init", "--quiet", env=env)
    commits = {}
    for release in RELEASES:
        with open(os.path.join(repo, "VERSION"), "w", encoding="utf-8") as f:
            f.write(release + "\n")
        _git(repo, "add", "VERSION", env=env)
        _git(repo, "commit", "--quiet", "-m", f"Release {release}", env=env)
        _git(repo, "-c", f"user.signingkey={signing_key['fingerprint']}",
             "tag", "-s", release, "-m", release, env=env)
        commits[release] = _git(repo, "rev-parse", "HEAD", env=env)
    return {"data_dir": str(data_dir), "repo": repo, "env": env, "commits": commits}


@pytest.fixture
def verifier(signing_key):
    with GpgSignatureVerifier(trusted_keys=[signing_key["public"]]) as v:
        yield v


def test_list_tags_of_local_repository(mirror):
    assert sorted(GitClient().list_tags(os.path.join(mirror["repo"], ".git"))) == RELEASES


def test_verified_clone(mirror, verifier, signing_key, tmp_path):
    dest = str(tmp_path / "checkout")
    result = clone({"file": [mirror["data_dir"]]}, "file:repo@~1.1.0", dest, verifier)

    assert result.state is CloneState.VERIFIED
    assert result.tag == "v1.1.0"
    assert result.commit == mirror["commits"]["v1.1.0"]
    assert result.fingerprint == signing_key["fingerprint"]
    with open(os.path.join(dest, "VERSION"), encoding="utf-8") as f:
        assert f.read().strip() == "v1.1.0"
    assert not is_untrusted(dest)


def test_fallback_past_missing_mirror(mirror, verifier, tmp_path):
    registry = {"file": [str(tmp_path / "gone"), mirror["data_dir"]]}
    dest = str(tmp_path / "checkout")
    result = clone(registry, "file:repo@^2.0.0", dest, verifier)
    assert result.verified
    assert result.tag == "v2.0.0"
    assert len(result.attempts) == 1


def test_all_mirrors_missing(verifier, tmp_path):
    registry = {"file": [str(tmp_path / "a"), str(tmp_path / "b")]}
    with pytest.raises(AllRemotesUnreachable):
        clone(registry, "file:repo@^1.0.0", str(tmp_path / "checkout"), verifier)


def test_no_matching_version(mirror, verifier, tmp_path):
    dest = str(tmp_path / "checkout")
    with pytest.raises(NoMatchingVersion):
        clone({"file": [mirror["data_dir"]]}, "file:repo@^3.0.0", dest, verifier)
    assert is_untrusted(dest)


def test_unknown_signer_is_rejected(mirror, tmp_path):
    dest = str(tmp_path / "checkout")
    with GpgSignatureVerifier() as untrusting:
        with pytest.raises(SignatureVerificationFailed) as excinfo:
            clone({"file": [mirror["data_dir"]]}, "file:repo@~1.0.0", dest, untrusting)
    assert excinfo.value.result.state is CloneState.VERIFICATION_FAILED
    assert is_untrusted(dest)


def test_fingerprint_allow_list(mirror, signing_key, tmp_path):
    dest = str(tmp_path / "checkout")
    with GpgSignatureVerifier(trusted_keys=[signing_key["public"]], fingerprints=["0" * 40]) as strict:
        with pytest.raises(SignatureVerificationFailed) as excinfo:
            clone({"file": [mirror["data_dir"]]}, "file:repo@~1.0.0", dest, strict)
    assert "not an allowed key" in excinfo.value.reason


def test_retargeted_tag_is_rejected(mirror, verifier, tmp_path_factory, tmp_path):
    """A tag moved to another commit keeps its signature but no longer verifies."""
    data_dir = tmp_path_factory.mktemp("tampered")
    env = mirror["env"]
    gitdir = os.path.join(str(data_dir), "repo", ".git")
    _git(None, "clone", "--quiet", "--mirror", mirror["repo"], gitdir, env=env)

    raw = _git(gitdir, "cat-file", "tag", "refs/tags/v1.1.0", env=env) + "\n"
    forged = raw.replace(mirror["commits"]["v1.1.0"], mirror["commits"]["v1.0.0"], 1)
    forged_sha = _git(gitdir, "mktag", env=env, input_text=forged)
    _git(gitdir, "update-ref", "refs/tags/v1.1.0", forged_sha, env=env)

    dest = str(tmp_path / "checkout")
    with pytest.raises(SignatureVerificationFailed) as excinfo:
        clone({"file": [str(data_dir)]}, "file:repo@~1.1.0", dest, verifier)
    result = excinfo.value.result
    assert result.commit == mirror["commits"]["v1.0.0"]
    assert result.state is CloneState.VERIFICATION_FAILED
    assert is_untrusted(dest)


def _git_raw(repo, *args, env=None, input_data=None):
    return subprocess.run(
        ["git", *args], cwd=repo, env=env, input=input_data, capture_output=True, check=True,
    ).stdout


@pytest.fixture(scope="module")
def verbatim_mirror(signing_key, mirror, tmp_path_factory):
    """Signed tags whose messages are not UTF-8 (v1.0.0) or use CRLF (v1.1.0)."""
    data_dir = tmp_path_factory.mktemp("verbatim")
    repo = str(data_dir / "repo")
    env = mirror["env"]
    os.makedirs(repo)
    _git(repo, "init", "--quiet", env=env)
    with open(os.path.join(repo, "VERSION"), "w", encoding="utf-8") as f:
        f.write("verbatim\n")
    _git(repo, "add", "VERSION", env=env)
    _git(repo, "commit", "--quiet", "-m", "Release", env=env)
    messages = {
        "v1.0.0": b"Release caf\xe9\n",
        "v1.1.0": b"Release notes\r\nline two\r\n",
    }
    for tag, message in messages.items():
        message_file = str(data_dir / f"{tag}.msg")
        with open(message_file, "wb") as f:
            f.write(message)
        _git(repo, "-c", f"user.signingkey={signing_key['fingerprint']}",
             "tag", "-s", "--cleanup=verbatim", "-F", message_file, tag, env=env)
        _git(repo, "verify-tag", tag, env=env)
    return {"data_dir": str(data_dir), "commit": _git(repo, "rev-parse", "HEAD", env=env)}


@pytest.mark.parametrize("version_range,tag", [
    ("~1.0.0", "v1.0.0"),
    ("~1.1.0", "v1.1.0"),
])
def test_tag_message_bytes_are_verified_verbatim(verbatim_mirror, verifier, tmp_path, version_range, tag):
    dest = str(tmp_path / "checkout")
    result = clone({"file": [verbatim_mirror["data_dir"]]}, f"file:repo@{version_range}", dest, verifier)
    assert result.state is CloneState.VERIFIED
    assert result.tag == tag
    assert result.commit == verbatim_mirror["commit"]
    assert not is_untrusted(dest)


def test_corrupted_signature_is_rejected(mirror, verifier, tmp_path_factory, tmp_path):
    """A tag that still targets the right commit but carries damaged signature bytes."""
    data_dir = tmp_path_factory.mktemp("corrupted")
    env = mirror["env"]
    gitdir = os.path.join(str(data_dir), "repo", ".git")
    _git(None, "clone", "--quiet", "--mirror", mirror["repo"], gitdir, env=env)

    raw = _git_raw(gitdir, "cat-file", "tag", "refs/tags/v1.1.0", env=env)
    head, armor = raw.split(b"-----BEGIN PGP SIGNATURE-----", 1)
    lines = armor.split(b"\n")
    body = max(i for i, line in enumerate(lines) if len(line) > 40)
    line = bytearray(lines[body])
    line[20] = ord("B") if line[20] != ord("B") else ord("C")
    lines[body] = bytes(line)
    forged = head + b"-----BEGIN PGP SIGNATURE-----" + b"\n".join(lines)
    forged_sha = _git_raw(gitdir, "mktag", env=env, input_data=forged).strip().decode("ascii")
    _git(gitdir, "update-ref", "refs/tags/v1.1.0", forged_sha, env=env)

    dest = str(tmp_path / "checkout")
    with pytest.raises(SignatureVerificationFailed) as excinfo:
        clone({"file": [str(data_dir)]}, "file:repo@~1.1.0", dest, verifier)
    result = excinfo.value.result
    assert result.commit == mirror["commits"]["v1.1.0"]
    assert result.state is CloneState.VERIFICATION_FAILED
    assert is_untrusted(dest)


def test_caller_keyring_is_only_read(mirror, signing_key, tmp_path):
    keyring = tempfile.mkdtemp(prefix="mf-ring-")
    os.chmod(keyring, 0o700)
    try:
        with GpgSignatureVerifier(gnupghome=keyring, trusted_keys=[signing_key["public"]]) as v:
            result = clone({"file": [mirror["data_dir"]]}, "file:repo@~1.1.0", str(tmp_path / "checkout"), v)
        assert result.verified
        assert not list(gnupg.GPG(gnupghome=keyring).list_keys())
    finally:
        subprocess.run(["gpgconf", "--kill", "gpg-agent"], env=dict(os.environ, GNUPGHOME=keyring),
                       capture_output=True, check=False)
        shutil.rmtree(keyring, ignore_errors=True)
