"""CLI subcommands, grouped by concern and registered in repomirror.main."""
