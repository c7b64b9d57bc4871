"""
Flight Surety Oracle — off-chain oracle coordination for the FlightSuretyApp contract.
"""

__version__ = "1.0.0"
