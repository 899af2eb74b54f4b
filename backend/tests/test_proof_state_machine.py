"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Proof State Machine (Direct Python Tests)                    ║
║                                                                              ║
║  1. Valid transitions work correctly                                         ║
║  2. Invalid transitions are blocked                                          ║
║  3. Invariants are enforced                                                  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import pytest

from models.proof import ProofStatus
from services.proof_state_machine import (
    VALID_PROOF_TRANSITIONS,
    ProofInvariantError,
    validate_proof_transition,
    check_sent_invariants,
    check_approved_invariants,
    check_modification_invariants,
    is_terminal,
)

PREPARING = ProofStatus.PREPARING.value
SENT = ProofStatus.SENT_TO_CLIENT.value
APPROVED = ProofStatus.APPROVED.value
MODIFICATION = ProofStatus.MODIFICATION_REQUESTED.value


class TestValidTransitions:
    """Test the VALID_PROOF_TRANSITIONS map"""

    def test_every_status_has_an_entry(self):
        assert set(VALID_PROOF_TRANSITIONS) == {s.value for s in ProofStatus}

    def test_preparing_only_goes_to_sent(self):
        assert VALID_PROOF_TRANSITIONS[PREPARING] == [SENT]

    def test_sent_goes_to_either_decision(self):
        valid_next = VALID_PROOF_TRANSITIONS[SENT]
        assert APPROVED in valid_next
        assert MODIFICATION in valid_next
        assert PREPARING not in valid_next

    def test_decisions_are_terminal(self):
        assert VALID_PROOF_TRANSITIONS[APPROVED] == []
        assert VALID_PROOF_TRANSITIONS[MODIFICATION] == []
        assert is_terminal(APPROVED)
        assert is_terminal(MODIFICATION)
        assert not is_terminal(SENT)
        assert not is_terminal(None)


class TestTransitionValidation:

    def test_valid_transition_passes(self):
        assert validate_proof_transition("p1", SENT, APPROVED) is True

    def test_cannot_skip_sending(self):
        with pytest.raises(ProofInvariantError) as exc_info:
            validate_proof_transition("p1", PREPARING, APPROVED)
        assert "INVALID TRANSITION" in str(exc_info.value)

    def test_cannot_leave_terminal_status(self):
        with pytest.raises(ProofInvariantError):
            validate_proof_transition("p1", APPROVED, MODIFICATION)
        with pytest.raises(ProofInvariantError):
            validate_proof_transition("p1", MODIFICATION, SENT)

    def test_unknown_status_blocked(self):
        with pytest.raises(ProofInvariantError):
            validate_proof_transition("p1", "Brouillon", SENT)


class TestInvariantChecks:

    def test_sent_requires_token(self):
        assert check_sent_invariants({"id": "p1", "approval_token": "abc"}) is True
        with pytest.raises(ProofInvariantError) as exc_info:
            check_sent_invariants({"id": "p1", "approval_token": None})
        assert "approval_token" in str(exc_info.value)

    def test_approval_requires_name(self):
        assert check_approved_invariants("Marie") is True
        for blank in (None, "", "   "):
            with pytest.raises(ProofInvariantError):
                check_approved_invariants(blank)

    def test_modification_requires_comments(self):
        assert check_modification_invariants("Changer la couleur") is True
        for blank in (None, "", "\n\t "):
            with pytest.raises(ProofInvariantError):
                check_modification_invariants(blank)
