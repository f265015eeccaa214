"""Services — analyzer, plan builder, template catalog, event bus."""
