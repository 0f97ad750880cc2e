"""Tests for the temporary signing keychain lifecycle."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import FINGERPRINT, OTHER_FINGERPRINT, FakeCredentialStore
from release_builder.cleanup import ExitHooks
from release_builder.config import SigningCredentials
from release_builder.errors import CredentialStoreError
from release_builder.keychain import (
    SecurityCredentialStore,
    SigningIdentityManager,
    parse_identity_hashes,
)

ORIGINAL = ["/Users/ci/login.keychain-db", "/Library/Keychains/System.keychain"]


def _manager(store, credentials, work_dir, logger, hooks=None):
    return SigningIdentityManager(credentials, store, work_dir, logger, hooks)


def test_missing_password_is_unavailable_without_mutation(work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL))
    creds = SigningCredentials(certificate_p12="cDEy", certificate_password="")
    manager = _manager(store, creds, work_dir, logger)

    assert manager.setup() is None
    assert store.calls == []
    assert list(work_dir.iterdir()) == []


def test_setup_finds_single_identity(signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL))
    manager = _manager(store, signing_credentials, work_dir, logger)

    identity = manager.setup()

    assert identity is not None
    assert identity.fingerprint == FINGERPRINT
    assert str(identity.keychain) == manager.keychain
    assert store.keychains[0] == manager.keychain
    assert store.keychains[1:] == ORIGINAL
    assert store.default == manager.keychain
    # certificate was written for import and removed afterwards
    assert len(store.imported) == 1
    assert not store.imported[0].exists()


def test_teardown_restores_search_list_and_default(signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL), default=ORIGINAL[0])
    manager = _manager(store, signing_credentials, work_dir, logger)
    manager.setup()
    keychain = manager.keychain

    manager.teardown()

    assert store.keychains == ORIGINAL
    assert store.default == ORIGINAL[0]
    assert keychain in store.deleted
    assert not store.keychain_exists(keychain)
    assert manager.identity is None


def test_teardown_is_idempotent_and_safe_before_setup(signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL))
    manager = _manager(store, signing_credentials, work_dir, logger)
    manager.teardown()
    assert store.calls == []

    manager.setup()
    manager.teardown()
    calls = len(store.calls)
    manager.teardown()
    assert len(store.calls) == calls
    assert store.keychains == ORIGINAL


def test_empty_search_list_is_restored_empty(signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=[], default=None)
    manager = _manager(store, signing_credentials, work_dir, logger)
    manager.setup()
    assert store.keychains == [manager.keychain]

    manager.teardown()
    assert store.keychains == []


@pytest.mark.parametrize(
    "step",
    [
        "create_keychain",
        "set_keychain_settings",
        "unlock_keychain",
        "set_keychains",
        "set_default_keychain",
        "import_certificate",
        "set_key_partition_list",
        "find_identities",
    ],
)
def test_failure_at_any_step_restores_state(step, signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL), default=ORIGINAL[0], fail_on=step)
    manager = _manager(store, signing_credentials, work_dir, logger)

    assert manager.setup() is None
    assert store.keychains == ORIGINAL
    assert store.default == ORIGINAL[0]
    assert store.created == {}
    assert list(work_dir.iterdir()) == []


def test_keychain_left_by_failed_create_is_deleted(signing_credentials, work_dir, logger):
    class PartialCreateStore(FakeCredentialStore):
        def create_keychain(self, keychain, password):
            # file written, then the command fails
            self.created[keychain] = password
            raise CredentialStoreError("create_keychain failed")

    store = PartialCreateStore(keychains=list(ORIGINAL))
    manager = _manager(store, signing_credentials, work_dir, logger)

    assert manager.setup() is None
    assert store.created == {}
    assert len(store.deleted) == 1
    assert store.keychains == ORIGINAL


@pytest.mark.parametrize(
    "step,fail_from",
    [
        ("list_keychains", 2),
        ("set_keychains", 2),
        ("set_default_keychain", 2),
        ("delete_keychain", 1),
    ],
)
def test_teardown_continues_past_store_errors(step, fail_from, signing_credentials, work_dir, logger, log_stream):
    store = FakeCredentialStore(
        keychains=list(ORIGINAL), default=ORIGINAL[0], identities=[], fail_on=step, fail_from=fail_from
    )
    manager = _manager(store, signing_credentials, work_dir, logger)

    # no identity, so setup tears down immediately
    assert manager.setup() is None
    assert manager.keychain is None
    assert "Could not" in log_stream.getvalue()
    assert "delete_keychain" in store.calls
    if step != "set_keychains":
        assert store.keychains == ORIGINAL
    if step != "delete_keychain":
        assert store.created == {}

    calls = len(store.calls)
    manager.teardown()
    assert len(store.calls) == calls


def test_teardown_replaces_default_no_longer_listed(signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=["/a", "/b"], default="/gone.keychain")
    manager = _manager(store, signing_credentials, work_dir, logger)
    manager.setup()

    manager.teardown()

    assert store.keychains == ["/a", "/b"]
    assert store.default == "/a"


def test_no_identity_forces_teardown(signing_credentials, work_dir, logger, log_stream):
    store = FakeCredentialStore(keychains=list(ORIGINAL), identities=[])
    manager = _manager(store, signing_credentials, work_dir, logger)

    assert manager.setup() is None
    assert "No signing identities found" in log_stream.getvalue()
    assert store.keychains == ORIGINAL
    assert store.created == {}


def test_ambiguous_identity_reports_candidates(signing_credentials, work_dir, logger, log_stream):
    store = FakeCredentialStore(keychains=list(ORIGINAL), identities=[FINGERPRINT, OTHER_FINGERPRINT])
    manager = _manager(store, signing_credentials, work_dir, logger)

    assert manager.setup() is None
    output = log_stream.getvalue()
    assert "Multiple signing identities found" in output
    assert FINGERPRINT in output and OTHER_FINGERPRINT in output
    assert store.keychains == ORIGINAL


def test_invalid_certificate_blob_is_unavailable(work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL))
    creds = SigningCredentials(certificate_p12="not base64!!", certificate_password="pw")
    manager = _manager(store, creds, work_dir, logger)

    assert manager.setup() is None
    assert store.mutations == []


def test_teardown_only_removes_own_entry(signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL))
    manager = _manager(store, signing_credentials, work_dir, logger)
    manager.setup()
    # another tool adds a keychain while we run
    store.keychains.append("/tmp/other.keychain-db")

    manager.teardown()
    assert store.keychains == ORIGINAL + ["/tmp/other.keychain-db"]


def test_setup_registers_teardown_with_exit_hooks(signing_credentials, work_dir, logger):
    store = FakeCredentialStore(keychains=list(ORIGINAL))
    hooks = ExitHooks(logger)
    manager = _manager(store, signing_credentials, work_dir, logger, hooks)
    manager.setup()

    hooks.run()
    assert store.keychains == ORIGINAL
    assert store.created == {}


# ---------------------------------------------------------------------------
# SecurityCredentialStore
# ---------------------------------------------------------------------------


FIND_IDENTITY_OUTPUT = f"""
  1) {FINGERPRINT} "Developer ID Application: Example (TEAM123)"
  2) {FINGERPRINT} "Developer ID Application: Example (TEAM123)"
     1 valid identities found
"""


def test_parse_identity_hashes_dedupes():
    assert parse_identity_hashes(FIND_IDENTITY_OUTPUT) == [FINGERPRINT]
    assert parse_identity_hashes("0 valid identities found") == []


def _completed(stdout="", returncode=0, stderr=""):
    result = MagicMock()
    result.stdout = stdout
    result.returncode = returncode
    result.stderr = stderr
    return result


@patch("release_builder.keychain.subprocess.run")
def test_security_list_keychains_strips_quotes(mock_run):
    mock_run.return_value = _completed(
        '    "/Users/ci/Library/Keychains/login.keychain-db"\n    "/Library/Keychains/System.keychain"\n'
    )
    store = SecurityCredentialStore()
    assert store.list_keychains() == [
        "/Users/ci/Library/Keychains/login.keychain-db",
        "/Library/Keychains/System.keychain",
    ]


@patch("release_builder.keychain.subprocess.run")
def test_security_errors_hide_passwords(mock_run):
    mock_run.return_value = _completed(returncode=51, stderr="bad password")
    store = SecurityCredentialStore()
    with pytest.raises(CredentialStoreError) as excinfo:
        store.unlock_keychain("/tmp/k.keychain-db", "s3cret")
    assert "s3cret" not in str(excinfo.value)


@patch("release_builder.keychain.subprocess.run")
def test_security_default_keychain_missing(mock_run):
    mock_run.return_value = _completed(returncode=1, stderr="A default keychain could not be found.")
    assert SecurityCredentialStore().default_keychain() is None


@patch("release_builder.keychain.subprocess.run")
def test_security_import_passes_tool_access(mock_run):
    mock_run.return_value = _completed()
    SecurityCredentialStore().import_certificate(
        "/tmp/k", Path("/tmp/cert.p12"), "pw", ["/usr/bin/codesign", "/usr/bin/security"]
    )
    cmd = mock_run.call_args[0][0]
    assert cmd[:3] == ["security", "import", "/tmp/cert.p12"]
    assert cmd.count("-T") == 2


@patch("release_builder.keychain.subprocess.run", side_effect=FileNotFoundError("security"))
def test_security_not_installed_is_store_error(mock_run):
    store = SecurityCredentialStore()
    with pytest.raises(CredentialStoreError):
        store.list_keychains()
    with pytest.raises(CredentialStoreError):
        store.default_keychain()
