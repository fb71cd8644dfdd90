# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum

class StakeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"

class OpType(str, Enum):
    OPEN_STAKE = "OPEN_STAKE"
    REDUCE_STAKE = "REDUCE_STAKE"
    EMERGENCY_EXIT = "EMERGENCY_EXIT"
    CLAIM_EMISSION = "CLAIM_EMISSION"
    CLAIM_REVENUE = "CLAIM_REVENUE"
    RECORD_EMISSION = "RECORD_EMISSION"   # Privileged: emission recorder
    DEPOSIT_REVENUE = "DEPOSIT_REVENUE"   # Restricted: revenue depositors

    # Admin
    REGISTER_ASSET = "REGISTER_ASSET"
    PAUSE = "PAUSE"
    UNPAUSE = "UNPAUSE"
    SET_EMERGENCY_EXIT = "SET_EMERGENCY_EXIT"
    UPDATE_CONFIG = "UPDATE_CONFIG"
    SWEEP_RETAINED = "SWEEP_RETAINED"

class ProtocolError(Exception):
    pass

class ValidationError(ProtocolError):
    """Rejected input: raised before any state is touched."""
    pass

class StakeNotFound(ValidationError):
    pass

class UnauthorizedError(ValidationError):
    """Caller is not the stake owner or lacks the required privilege."""
    pass

class StateError(ProtocolError):
    """Operation not allowed in the current state (closed stake, paused pool, ...)."""
    pass

class ReentrancyError(StateError):
    pass

class TransferFailure(ProtocolError):
    """Asset movement failed; the whole operation is rolled back."""
    pass

class LedgerInvariantError(ProtocolError):
    pass
