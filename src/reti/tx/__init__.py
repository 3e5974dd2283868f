"""
Transaction module.

Group descriptions, fee estimation, two-phase submission, signing and
the staking operations built on them.
"""
