"""fwfetch: fetch, verify and cache firmware images published as GitHub releases."""
