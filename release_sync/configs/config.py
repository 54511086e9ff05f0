import os
from typing import Dict, Any

class Config:
	"""Configuration for the release publishing client."""

	# GitHub API Configuration
	GITHUB_TOKEN = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PAT")
	HTTP_TIMEOUT_S = int(os.getenv("HTTP_TIMEOUT_S", "30"))
	GITHUB_GET_RETRIES = int(os.getenv("GITHUB_GET_RETRIES", "3"))

	# Endpoint overrides (GitHub Enterprise); empty API URL keeps github.com
	GITHUB_API_URL = os.getenv("GITHUB_API_URL", "")
	GITHUB_UPLOAD_URL = os.getenv("GITHUB_UPLOAD_URL", "")
	GITHUB_DOWNLOAD_URL = os.getenv("GITHUB_DOWNLOAD_URL", "https://github.com")
	GITHUB_SKIP_TLS_VERIFY = bool(int(os.getenv("GITHUB_SKIP_TLS_VERIFY", "0")))

	# Quota guard
	QUOTA_GUARD_ENABLED = bool(int(os.getenv("QUOTA_GUARD_ENABLED", "1")))
	QUOTA_THRESHOLD = int(os.getenv("QUOTA_THRESHOLD", "100"))
	QUOTA_FALLBACK_SLEEP_S = float(os.getenv("QUOTA_FALLBACK_SLEEP_S", "15"))
	# 0 means wait for as many reset windows as it takes
	QUOTA_MAX_WAITS = int(os.getenv("QUOTA_MAX_WAITS", "0"))
	QUOTA_BACKOFF_FACTOR = float(os.getenv("QUOTA_BACKOFF_FACTOR", "1.0"))

	# Release publishing
	RELEASE_BODY_MAX_CHARS = int(os.getenv("RELEASE_BODY_MAX_CHARS", "125000"))
	RELEASE_LOOKUP_STRICT = bool(int(os.getenv("RELEASE_LOOKUP_STRICT", "1")))
	RELEASE_NOTES_MODE = os.getenv("RELEASE_NOTES_MODE", "keep-existing")

	# Pull requests
	PR_TEMPLATE_PATH = os.getenv("PR_TEMPLATE_PATH", ".github/PULL_REQUEST_TEMPLATE.md")
	PR_FOOTER = os.getenv("PR_FOOTER", "###### Automated with release-sync")

	# Observability
	METRICS_ROOT = os.getenv("METRICS_ROOT", ".cache/release_sync/metrics")
	METRICS_ENABLED = bool(int(os.getenv("METRICS_ENABLED", "1")))

	@classmethod
	def get_github_config(cls) -> Dict[str, Any]:
		"""Get GitHub configuration for the REST client."""
		return {
			"token": cls.GITHUB_TOKEN,
			"timeout_s": cls.HTTP_TIMEOUT_S,
			"get_retries": cls.GITHUB_GET_RETRIES,
			"api_url": cls.GITHUB_API_URL,
			"upload_url": cls.GITHUB_UPLOAD_URL,
			"download_url": cls.GITHUB_DOWNLOAD_URL,
			"skip_tls_verify": cls.GITHUB_SKIP_TLS_VERIFY,
		}

	@classmethod
	def get_quota_config(cls) -> Dict[str, Any]:
		return {
			"enabled": cls.QUOTA_GUARD_ENABLED,
			"threshold": cls.QUOTA_THRESHOLD,
			"fallback_sleep_s": cls.QUOTA_FALLBACK_SLEEP_S,
			"max_waits": cls.QUOTA_MAX_WAITS,
			"backoff_factor": cls.QUOTA_BACKOFF_FACTOR,
		}

	@classmethod
	def get_release_config(cls) -> Dict[str, Any]:
		"""Get release publishing configuration.

		Returns:
			Mapping with body limit, lookup strictness and default notes mode.
		"""
		return {
			"body_max_chars": cls.RELEASE_BODY_MAX_CHARS,
			"lookup_strict": cls.RELEASE_LOOKUP_STRICT,
			"notes_mode": cls.RELEASE_NOTES_MODE,
		}

	@classmethod
	def observability(cls) -> Dict[str, Any]:
		return {
			"metrics_root": cls.METRICS_ROOT,
			"metrics_enabled": cls.METRICS_ENABLED,
		}
