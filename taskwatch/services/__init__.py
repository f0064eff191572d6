"""Remote job service contract and its HTTP implementation."""
