import re

import pytest

from nftfuture.obfuscation import (
    content_url,
    extract_cid,
    protected_token,
    protected_url,
    verify_reference,
)

CID = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"
URL = f"https://ipfs.io/ipfs/{CID}"

# TV-01: Token is deterministic and URL-safe, 43 chars for a SHA-256 digest
def test_tv01_token_deterministic_and_urlsafe():
    a = protected_token(URL)
    assert a == protected_token(URL)
    assert len(a) == 43
    assert re.fullmatch(r"[A-Za-z0-9_-]+", a)

# TV-02: Salt and URL both feed the token
def test_tv02_token_depends_on_salt_and_url():
    assert protected_token(URL, "-haha") != protected_token(URL, "-other")
    assert protected_token(URL) != protected_token(URL + "x")

# TV-03: CID extraction stops at end of string or query
def test_tv03_extract_cid():
    assert extract_cid(URL) == CID
    assert extract_cid(f"{URL}?filename=a.json") == CID
    assert extract_cid("https://example.com/file.json") is None
    assert extract_cid("https://ipfs.io/ipfs/") is None

# TV-04: Protected URL round-trips through verification
def test_tv04_protected_url_verifies():
    link = protected_url(URL, "https://nft-to-the-future.shipstone.com/")
    prefix = "https://nft-to-the-future.shipstone.com/read/"
    assert link.startswith(prefix)
    cid, token = link[len(prefix):].split("/")
    assert cid == CID
    assert verify_reference(cid, token)

# TV-05: Any single-character change to the token is rejected
def test_tv05_mutated_token_rejected():
    token = protected_token(URL)
    for i in range(len(token)):
        replacement = "A" if token[i] != "A" else "B"
        mutated = token[:i] + replacement + token[i + 1:]
        assert not verify_reference(CID, mutated)

# TV-06: Token for one CID does not verify another
def test_tv06_token_bound_to_cid():
    token = protected_token(URL)
    assert not verify_reference(CID[:-1] + "e", token)
    assert not verify_reference("", token)
    assert not verify_reference(CID, "")

# TV-07: Gateway base is normalized with a trailing slash
def test_tv07_content_url_normalizes_gateway():
    assert content_url(CID, "https://ipfs.io/ipfs") == URL
    assert verify_reference(CID, protected_token(URL), gateway="https://ipfs.io/ipfs")

def test_protected_url_requires_ipfs_url():
    with pytest.raises(ValueError):
        protected_url("https://example.com/doc.json", "https://nft-to-the-future.shipstone.com")
