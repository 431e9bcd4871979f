"""
Password security and validation utilities.
"""

import re
from typing import Tuple, List


class PasswordValidator:
    """Validates password strength and security requirements."""

    # Common passwords to reject (subset - full list should be much larger)
    COMMON_PASSWORDS = {
        'password', 'password1', 'password123', 'passw0rd', 'qwerty123',
        'abc12345', 'letmein1', 'trustno1', 'iloveyou1', 'welcome1',
        'welcome123', 'admin123', 'changeme1', 'sunshine1', 'football1',
        'qwertyuiop1', 'monkey123', 'dragon123', 'master123', 'taxpro123',
    }

    def __init__(
        self,
        min_length: int = 8,
        max_length: int = 128,
        require_uppercase: bool = True,
        require_lowercase: bool = True,
        require_digit: bool = True
    ):
        self.min_length = min_length
        self.max_length = max_length
        self.require_uppercase = require_uppercase
        self.require_lowercase = require_lowercase
        self.require_digit = require_digit

    def validate(self, password: str, email: str = None) -> Tuple[bool, List[str]]:
        """
        Validate password against security requirements.

        Args:
            password: The password to validate
            email: Optional email whose local part must not appear in the password

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        # Length checks
        if len(password) < self.min_length:
            errors.append(f'Password must be at least {self.min_length} characters long')

        if len(password) > self.max_length:
            errors.append(f'Password must not exceed {self.max_length} characters')

        # Complexity checks
        if self.require_uppercase and not re.search(r'[A-Z]', password):
            errors.append('Password must contain at least one uppercase letter')

        if self.require_lowercase and not re.search(r'[a-z]', password):
            errors.append('Password must contain at least one lowercase letter')

        if self.require_digit and not re.search(r'\d', password):
            errors.append('Password must contain at least one number')

        # Common password check
        if password.lower() in self.COMMON_PASSWORDS:
            errors.append('This password is too common. Please choose a more unique password')

        # Email similarity check
        local_part = email.split('@')[0].lower() if email else ''
        if len(local_part) >= 4 and local_part in password.lower():
            errors.append('Password must not contain your email address')

        return (len(errors) == 0, errors)


# Global validator instance: 8+ characters with upper, lower and a digit
password_validator = PasswordValidator()


def validate_password(password: str, email: str = None) -> Tuple[bool, List[str]]:
    """Convenience function for password validation."""
    return password_validator.validate(password, email)
