"""Command line interface for replaying and following agent transcripts."""
