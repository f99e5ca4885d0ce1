"""Click subcommands for the duet CLI."""
