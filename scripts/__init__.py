"""
Scripts Package.

Command-line entry points for the bridge explorer.

Scripts:
- explore_transfer: Show the lifecycle of one bridge transfer
"""

# Scripts are meant to be run directly, not imported
