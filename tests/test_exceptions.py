"""Tests for exception hierarchy."""

import pytest

from steward.exceptions import (
    CheckpointError,
    CheckpointExistsError,
    CheckpointNotFoundError,
    CheckpointValidationError,
    ConfigError,
    EmptyResponseError,
    InvalidCheckpointNameError,
    OperationCancelledError,
    ProviderConnectionError,
    ProviderError,
    RestoreError,
    StateTransitionError,
    StewardError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
)


class TestStewardError:
    """Tests for base StewardError."""

    def test_basic_error(self):
        err = StewardError("Something went wrong")
        assert err.message == "Something went wrong"
        assert err.details == {}
        assert str(err) == "Something went wrong"

    def test_error_with_details(self):
        err = StewardError("Error occurred", {"code": 500})
        assert err.details == {"code": 500}
        assert "Details" in str(err)

    def test_catchable_as_exception(self):
        with pytest.raises(Exception):
            raise StewardError("test")


class TestHierarchy:
    """All errors derive from StewardError through their family base."""

    @pytest.mark.parametrize(
        "error,base",
        [
            (ConfigError("x"), StewardError),
            (ProviderConnectionError("x"), ProviderError),
            (EmptyResponseError("x"), ProviderError),
            (ToolNotFoundError("x"), ToolError),
            (ToolExecutionError("x"), ToolError),
            (CheckpointExistsError("x"), CheckpointError),
            (CheckpointNotFoundError("x"), CheckpointError),
            (InvalidCheckpointNameError("bad", "x"), CheckpointError),
            (CheckpointValidationError("x", ["e"]), CheckpointError),
            (RestoreError("x", ["e"]), CheckpointError),
        ],
    )
    def test_family(self, error, base):
        assert isinstance(error, base)
        assert isinstance(error, StewardError)

    def test_cancellation_is_not_provider_error(self):
        err = OperationCancelledError()
        assert not isinstance(err, ProviderError)
        assert err.message == "Operation was cancelled"


class TestSpecificErrors:
    """Tests for errors carrying extra fields."""

    def test_tool_not_found(self):
        err = ToolNotFoundError("frobnicate")
        assert err.tool_name == "frobnicate"
        assert "frobnicate" in err.message

    def test_state_transition(self):
        err = StateTransitionError("bad", from_state="IDLE", to_state="EXECUTING")
        assert err.from_state == "IDLE"
        assert err.details == {"from_state": "IDLE", "to_state": "EXECUTING"}

    def test_validation_error_lists_every_problem(self):
        err = CheckpointValidationError("cp", ["Missing metadata.json file", "Invalid conversation structure"])
        assert err.errors == ["Missing metadata.json file", "Invalid conversation structure"]
        assert "Missing metadata.json file, Invalid conversation structure" in err.message

    def test_checkpoint_exists_message(self):
        assert CheckpointExistsError("cp").message == "Checkpoint 'cp' already exists"
