"""Home-screen service layer for the blood donation coordination app."""
