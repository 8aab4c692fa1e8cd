"""
Authorization headers for the nRF Cloud REST API.

nRF Cloud uses a long-lived account API key sent as a bearer token, so
there is no login round-trip or token refresh.
"""


def get_standard_headers(api_key: str) -> dict:
    """
    Build the standard HTTP headers used by all authenticated nRF Cloud requests.

    :param api_key: nRF Cloud account API key.
    :return: Dictionary of HTTP headers.
    """
    return {
        "accept": "application/json",
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
