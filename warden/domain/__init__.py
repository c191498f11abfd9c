"""Domain packages for phone OTP and IP tracking."""
