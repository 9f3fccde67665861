"""Gateway command handlers — import all to register via @command."""

# Importing sub-modules triggers @command decorators, populating the registry.
from core.commands import utility  # noqa: F401
from core.commands import confirm_cmd  # noqa: F401
