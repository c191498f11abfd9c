"""Phone OTP issuance and verification."""
