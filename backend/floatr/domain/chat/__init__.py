"""Match-scoped chat rooms, messages and read receipts."""
