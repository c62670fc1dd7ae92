"""The pfstatus command line application."""
