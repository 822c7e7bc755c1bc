"""Unit tests for the data-management action table."""

from src.management import HANDLERS, Action


class TestActionDispatch:

    def test_every_action_has_a_handler(self):
        assert set(HANDLERS) == set(Action)

    def test_action_values_match_the_wire_names(self):
        assert {action.value for action in Action} == {
            "save_persona",
            "save_rule",
            "save_settings",
            "save_webhook_config",
            "test_threads_connection",
        }
