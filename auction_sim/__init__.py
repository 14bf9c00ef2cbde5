"""
Open auction simulation.

A block-height-timed auction contract and the simulated chain it runs on.
"""
