"""ETH Validator Monitor - track Ethereum validators with data from Beaconcha.in."""

__version__ = "1.0.0"
