"""Unit tests for the proof ledger."""

import pytest

from fakes import proof
from mint_ledger.ledger import ProofLedger, proofs_to_wallet_proofs
from mint_ledger.types import ProofStateError


class TestAddProofs:
    """Test adding proofs to the ledger."""

    def test_add_proofs_keyed_by_secret(self):
        """Test adding proofs and the resulting balance."""
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 4, "s1"), proof("k1", 2, "s2")])

        assert [p["secret"] for p in ledger.proofs] == ["s1", "s2"]
        assert ledger.balance == 6

    def test_duplicate_secret_last_write_wins(self):
        """A re-added secret replaces the held proof in place."""
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 4, "s1"), proof("k1", 2, "s2")])
        ledger.add_proofs([proof("k1", 8, "s1")])

        assert len(ledger.proofs) == 2
        assert ledger.proofs[0] == proof("k1", 8, "s1")
        assert ledger.balance == 10

    def test_duplicate_secret_within_one_call(self):
        """Test duplicate secrets within one batch."""
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 1, "s1"), proof("k1", 16, "s1")])

        assert ledger.proofs == [proof("k1", 16, "s1")]

    def test_reserved_flag_reset(self):
        """Test that the reserved flag is cleared on add."""
        ledger = ProofLedger()
        reserved = dict(proof("k1", 4, "s1"), reserved=True)
        ledger.add_proofs([reserved])

        assert ledger.proofs[0]["reserved"] is False

    def test_spent_secret_rejected(self):
        """Re-adding a spent secret fails and leaves the ledger untouched."""
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 4, "s1")])
        ledger.remove_proofs([proof("k1", 4, "s1")])

        with pytest.raises(ProofStateError):
            ledger.add_proofs([proof("k1", 2, "s2"), proof("k1", 4, "s1")])

        assert ledger.proofs == []
        assert [p["secret"] for p in ledger.spent_proofs] == ["s1"]


class TestRemoveProofs:
    """Test moving proofs to the spent collection."""

    def test_remove_moves_to_spent(self):
        """Test that removed proofs move to the spent collection."""
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 4, "s1"), proof("k1", 2, "s2"), proof("k2", 8, "s3")])

        removed = ledger.remove_proofs([proof("k1", 4, "s1"), proof("k2", 8, "s3")])

        assert [p["secret"] for p in removed] == ["s1", "s3"]
        assert [p["secret"] for p in ledger.proofs] == ["s2"]
        assert [p["secret"] for p in ledger.spent_proofs] == ["s1", "s3"]

    def test_collections_stay_disjoint(self):
        """Test that no secret is both spent and unspent."""
        ledger = ProofLedger()
        held = [proof("k1", 2**i, f"s{i}") for i in range(6)]
        ledger.add_proofs(held)
        before = {p["secret"] for p in ledger.spent_proofs}

        ledger.remove_proofs(held[::2])

        unspent = {p["secret"] for p in ledger.proofs}
        spent = {p["secret"] for p in ledger.spent_proofs}
        assert unspent.isdisjoint(spent)
        assert spent - before == {"s0", "s2", "s4"}

    def test_unknown_proof_still_recorded_as_spent(self):
        """Test that removing an unheld proof still records it as spent."""
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 4, "s1")])

        removed = ledger.remove_proofs([proof("k1", 2, "elsewhere")])

        assert removed == []
        assert ledger.balance == 4
        assert ledger.is_spent("elsewhere")

    def test_removing_twice_does_not_duplicate(self):
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 4, "s1")])
        ledger.remove_proofs([proof("k1", 4, "s1")])
        ledger.remove_proofs([proof("k1", 4, "s1")])

        assert len(ledger.spent_proofs) == 1


class TestAudit:
    """Test the blind signature audit trail."""

    def test_append_audit_hex_encodes(self):
        """Test that audit secrets and blinding factors are hex-encoded."""
        ledger = ProofLedger()
        signature = {"amount": 8, "C_": "02ab", "id": "00aa000000000001"}

        audit = ledger.append_audit(signature, 8, b"\x01\x02", b"\xff")

        assert audit == {
            "signature": signature,
            "amount": 8,
            "secret": "0102",
            "id": "00aa000000000001",
            "r": "ff",
        }
        assert ledger.blind_signatures == [audit]

    def test_audit_never_deduplicates(self):
        """Test that identical audit records are all kept."""
        ledger = ProofLedger()
        signature = {"amount": 1, "C_": "02ab", "id": "k1"}
        ledger.append_audit(signature, 1, "aa", "bb")
        ledger.append_audit(signature, 1, "aa", "bb")

        assert len(ledger.blind_signatures) == 2

    def test_audit_survives_proof_lifecycle(self):
        ledger = ProofLedger()
        ledger.append_audit({"amount": 4, "C_": "02ab", "id": "k1"}, 4, "aa", "bb")
        ledger.add_proofs([proof("k1", 4, "s1")])
        ledger.remove_proofs([proof("k1", 4, "s1")])

        assert len(ledger.blind_signatures) == 1


class TestLoad:
    """Test loading and dumping ledger collections."""

    def test_load_prefers_spent_on_overlap(self):
        """Test that a secret in both collections loads as spent."""
        ledger = ProofLedger(
            proofs=[proof("k1", 4, "s1"), proof("k1", 2, "s2")],
            spent_proofs=[proof("k1", 4, "s1")],
        )

        assert [p["secret"] for p in ledger.proofs] == ["s2"]

    def test_dump_roundtrip(self):
        """Test rebuilding a ledger from its dump."""
        ledger = ProofLedger()
        ledger.add_proofs([proof("k1", 4, "s1"), proof("k1", 2, "s2")])
        ledger.remove_proofs([proof("k1", 4, "s1")])
        data = ledger.dump()

        copy = ProofLedger(data["proofs"], data["spent_proofs"], data["blind_signatures"])

        assert copy.proofs == ledger.proofs
        assert copy.spent_proofs == ledger.spent_proofs


def test_proofs_to_wallet_proofs_drops_extra_fields():
    """Test conversion to wallet proofs."""
    plain = {"id": "k1", "amount": 1, "secret": "s", "C": "02ab", "witness": "w"}

    assert proofs_to_wallet_proofs([plain]) == [
        {"id": "k1", "amount": 1, "secret": "s", "C": "02ab", "reserved": False}
    ]
