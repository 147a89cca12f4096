"""Order workflow: enums, id generation, state rules, persistence and service."""
