"""Small text helpers shared by the transcript modules."""
