"""Pure domain types: clock, material enums and value objects."""
