"""PassVault Meta information.
   PassVault keeps password-manager secrets encrypted under a key
   derived from the user's login password.
"""
__title__ = 'passvault'
__description__ = (
   'Client-side vault encryption engine: key derivation, per-field '
   'AES-GCM encryption and password-protected export bundles.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2025 PassVault Authors'
__author__ = 'PassVault Authors'
__author_email__ = 'dev@passvault.invalid'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/passvault/passvault'
