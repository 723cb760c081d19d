"""
Configuration constants for the Clockode TOTP vault.
"""

# Application Metadata
APP_VERSION = "0.2.0"  # Use: Current version of the vault core. Type: str. Range: Semantic versioning string (e.g., "1.0.0")
APP_NAME = "Clockode"  # Use: Human readable name of the application. Type: str. Range: Any valid string.
APP_ID = "dev.mariinkys.Clockode"  # Use: Directory name used under the platform data directory. Type: str. Range: Any valid directory name.

# File Format Settings
VAULT_FORMAT_VERSION = 1  # Use: Version byte written at offset 0 of every vault file. Type: int. Range: 0 to 255 (u8).
CODEC_VERSION = 1  # Use: Version tag stored inside the encrypted vault document. Type: int. Range: Positive integer.
BACKUP_FORMAT_NAME = "clockode-backup"  # Use: Value of the "format" key that identifies a JSON backup document. Type: str. Range: Any string.
BACKUP_FORMAT_VERSION = 1  # Use: Version of the JSON backup document layout. Type: int. Range: Positive integer.
DEFAULT_VAULT_FILE = "vault"  # Use: Default filename for the encrypted vault inside the application data directory. Type: str. Range: Any valid filename.
TEMP_FILE_SUFFIX = ".tmp"  # Use: Suffix for the temporary file written before an atomic replace. Type: str. Range: Any valid filename suffix.

# Security Settings
SALT_SIZE = 16  # Use: Size of the cryptographic salt in bytes for key derivation. Type: int. Range: Fixed at 16 bytes by the vault file layout.
KEY_SIZE = 32  # Use: Size of the encryption key in bytes. Corresponds to AES-256. Type: int. Range: 32 bytes.
NONCE_SIZE = 12  # Use: Size of the Nonce (Number used once) in bytes for AES-GCM. Type: int. Range: 12 bytes (96 bits) is the recommended size for GCM.
TAG_SIZE = 16  # Use: Size of the authentication tag in bytes for AES-GCM. Type: int. Range: 16 bytes (128 bits).
DEFAULT_KDF = "scrypt"  # Use: Key derivation function used for new vaults and rekeying. Type: str. Range: "scrypt" or "argon2id".
SCRYPT_N = 2 ** 17  # Use: scrypt CPU/memory cost. Type: int. Range: Power of two greater than 1, at most SCRYPT_MAX_N.
SCRYPT_R = 8  # Use: scrypt block size. Type: int. Range: 1 to SCRYPT_MAX_R.
SCRYPT_P = 1  # Use: scrypt parallelism. Type: int. Range: 1 to SCRYPT_MAX_P.
SCRYPT_MAX_N = 2 ** 22  # Use: Upper bound accepted for N when reading a vault header. Type: int. Range: Power of two.
SCRYPT_MAX_R = 32  # Use: Upper bound accepted for r when reading a vault header. Type: int. Range: Positive integer.
SCRYPT_MAX_P = 16  # Use: Upper bound accepted for p when reading a vault header. Type: int. Range: Positive integer.
KDF_MAX_MEMORY = 1024 * 1024 * 1024  # Use: Largest working memory (bytes) a vault header may ask the KDF for. Type: int. Range: Positive integer; scrypt uses 128 * N * r bytes.
ARGON2_TIME_COST = 2  # Use: Argon2id time cost parameter. Controls the number of iterations. Type: int. Range: 1 to ARGON2_MAX_TIME_COST.
ARGON2_MEMORY_COST = 65536  # Use: Argon2id memory cost parameter in KiB. Type: int. Range: At least 8 * parallelism, at most ARGON2_MAX_MEMORY_COST.
ARGON2_PARALLELISM = 4  # Use: Argon2id parallelism parameter. Controls the number of lanes. Type: int. Range: 1 to ARGON2_MAX_PARALLELISM.
ARGON2_MAX_TIME_COST = 64  # Use: Upper bound accepted for the Argon2id time cost read from a header. Type: int. Range: Positive integer.
ARGON2_MAX_MEMORY_COST = KDF_MAX_MEMORY // 1024  # Use: Upper bound accepted for the Argon2id memory cost (KiB) read from a header. Type: int. Range: Positive integer.
ARGON2_MAX_PARALLELISM = 64  # Use: Upper bound accepted for the Argon2id parallelism read from a header. Type: int. Range: Positive integer.

# TOTP Settings
TOTP_DEFAULT_DIGITS = 6  # Use: Number of digits for new accounts when none is given. Type: int. Range: One of TOTP_ALLOWED_DIGITS.
TOTP_ALLOWED_DIGITS = (6, 8)  # Use: Code lengths an account may use. Type: tuple[int]. Range: Subset of 1..10.
TOTP_DEFAULT_PERIOD = 30  # Use: Default time step in seconds. Type: int. Range: 1 to TOTP_MAX_PERIOD.
TOTP_MAX_PERIOD = 300  # Use: Largest time step accepted for an account. Type: int. Range: Positive integer.
TOTP_DEFAULT_ALGORITHM = "SHA1"  # Use: Default HMAC hash for new accounts, the most widely supported one. Type: str. Range: "SHA1", "SHA256" or "SHA512".
OTPAUTH_SCHEME = "otpauth"  # Use: URI scheme for provisioning links. Type: str. Range: "otpauth".
OTPAUTH_TYPE = "totp"  # Use: The only OTP type accepted in provisioning links. Type: str. Range: "totp".
