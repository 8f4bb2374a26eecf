"""Secondary signal sources.

The controller's free-form log lines are interpreted here into small signal
objects. Entities apply those signals through the same setters they use for
structured state records, so an interpreter can be swapped out or disabled
without touching state derivation.
"""
