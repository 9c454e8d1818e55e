"""AI-assisted field extraction for CNPIE project forms."""
