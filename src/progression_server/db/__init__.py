"""SQLite persistence for history blocks and character sheets."""
