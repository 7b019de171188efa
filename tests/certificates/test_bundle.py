from datetime import datetime, timedelta, timezone

from nodekeeper.certificates.bundle import CertificateBundle


def test_from_pem_dedupes_and_normalizes(make_cert):
    a = make_cert("ca-a")
    crlf = a.replace("\n", "\r\n")
    bundle = CertificateBundle.from_pem(a + "\n" + crlf + "garbage between\n")

    assert len(bundle) == 1
    assert bundle.pem().startswith("-----BEGIN CERTIFICATE-----\n")
    assert bundle.pem().endswith("-----END CERTIFICATE-----\n")


def test_empty_bundle():
    bundle = CertificateBundle.from_pem("")
    assert not bundle
    assert bundle.pem() == ""
    assert bundle.is_satisfied_by("anything")


def test_merge_is_a_union_that_keeps_order(make_cert):
    a, b, c = make_cert("a"), make_cert("b"), make_cert("c")
    prior = CertificateBundle.from_pem(a + b)
    merged = prior.merge(CertificateBundle.from_pem(c + a))

    assert merged.blocks == CertificateBundle.from_pem(a + b + c).blocks
    # merging what is already there changes nothing
    assert merged.merge(prior) == merged


def test_prune_expired_drops_only_expired(make_cert):
    now = datetime.now(timezone.utc)
    old = make_cert("old", not_after=now - timedelta(days=1))
    new = make_cert("new")
    bundle = CertificateBundle.from_pem(old + new)

    pruned = bundle.prune_expired(now)

    assert pruned == CertificateBundle.from_pem(new)


def test_prune_keeps_unparseable_blocks():
    junk = "-----BEGIN CERTIFICATE-----\nbm90IGEgY2VydA==\n-----END CERTIFICATE-----\n"
    bundle = CertificateBundle.from_pem(junk)
    assert bundle.prune_expired() == bundle


def test_is_satisfied_by_ignores_line_endings_and_extras(make_cert):
    a, b, c = make_cert("a"), make_cert("b"), make_cert("c")
    wanted = CertificateBundle.from_pem(a + b)

    installed = (b + c + a).replace("\n", "\r\n")
    assert wanted.is_satisfied_by(installed)
    assert not wanted.is_satisfied_by(a)
    assert not wanted.is_satisfied_by("")


def test_digest_is_stable(make_cert):
    a = make_cert("a")
    assert CertificateBundle.from_pem(a).digest() == CertificateBundle.from_pem(a.replace("\n", "\r\n")).digest()
    assert len(CertificateBundle.from_pem(a).digest()) == 64
