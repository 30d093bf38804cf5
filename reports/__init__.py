"""Daily market update assembly and delivery."""
