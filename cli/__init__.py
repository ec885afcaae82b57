"""Meeting Roster command-line interface."""
