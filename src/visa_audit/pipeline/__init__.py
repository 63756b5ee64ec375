"""Pipeline orchestration: channels, ordering gate, and the audit flows."""
