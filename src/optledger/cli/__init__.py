"""OptLedger command line interface."""
