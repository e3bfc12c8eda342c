"""Terminal UI: controller state machine, terminal renderer, textual app."""
