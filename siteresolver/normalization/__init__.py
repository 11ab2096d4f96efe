"""Identity normalization: text, phone numbers, tax IDs and addresses."""
