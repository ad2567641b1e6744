"""Git access, signature verification and verified cloning.

- git_client.py: git command line wrapper (ls-remote, clone, checkout, tag reads)
- signature.py: tag signature splitting and GnuPG verification
- cloner.py: mirror fallback, tag pinning and verification state machine
"""
