"""Pure domain layer: records, DTOs and the clock."""
