"""Economy rules: the game catalog and the pure formulas built on it."""
