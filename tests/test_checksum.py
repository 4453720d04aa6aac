from checksum import ChecksumVerifier, file_digest, parse_manifest
from conftest import FakeResponse, FakeSession, TARBALL_CONTENT, sha256, write

MANIFEST = """-----BEGIN PGP SIGNED MESSAGE-----
Hash: SHA256

1111111111111111111111111111111111111111111111111111111111111111  linux-6.11.7.tar.gz
2222222222222222222222222222222222222222222222222222222222222222  linux-6.11.7.tar.xz
3333333333333333333333333333333333333333333333333333333333333333  linux-6.11.7.tar.xz.sign
-----BEGIN PGP SIGNATURE-----
"""


def test_parse_manifest_matches_exact_file_name():
    assert parse_manifest(MANIFEST, "linux-6.11.7.tar.xz") == "2" * 64
    assert parse_manifest(MANIFEST, "linux-6.11.tar.xz") is None


def test_fetch_expected_digest(version):
    session = FakeSession({version.checksum_url: MANIFEST})

    assert ChecksumVerifier(session).fetch_expected_digest(version) == "2" * 64
    assert session.requested == ["https://cdn.kernel.org/pub/linux/kernel/v6.x/sha256sums.asc"]


def test_unreachable_manifest_is_unavailable(version):
    assert ChecksumVerifier(FakeSession()).fetch_expected_digest(version) is None


def test_http_error_is_unavailable(version):
    session = FakeSession({version.checksum_url: FakeResponse("Not Found", status_code=404)})

    assert ChecksumVerifier(session).fetch_expected_digest(version) is None


def test_unlisted_tarball_is_unavailable(version):
    session = FakeSession({version.checksum_url: "abc  linux-6.10.1.tar.xz\n"})

    assert ChecksumVerifier(session).fetch_expected_digest(version) is None


def test_verify(tmp_path):
    path = write(str(tmp_path / "linux.tar.xz"), TARBALL_CONTENT)
    verifier = ChecksumVerifier(FakeSession())

    assert file_digest(path) == sha256(TARBALL_CONTENT)
    assert verifier.verify(path, sha256(TARBALL_CONTENT))
    assert not verifier.verify(path, sha256(b"other"))
    # the published digests are lowercase; no case folding is done
    assert not verifier.verify(path, sha256(TARBALL_CONTENT).upper())


def test_verify_missing_file(tmp_path):
    assert not ChecksumVerifier(FakeSession()).verify(str(tmp_path / "missing"), "0" * 64)
