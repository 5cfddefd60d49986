"""Network controller: polls the network elements and reports to the central store."""
