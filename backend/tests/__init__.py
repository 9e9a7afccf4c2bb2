# Test package for the spa booking backend
