#!/usr/bin/env python3
"""Smoke test a running Smart Palette server"""

import sys
import requests

BASE_URL = "http://127.0.0.1:8000"
SAMPLE_IMAGE = "https://upload.wikimedia.org/wikipedia/commons/4/47/PNG_transparency_demonstration_1.png"


def check_health():
    """Check that the API is responding"""
    try:
        response = requests.get(f"{BASE_URL}/", timeout=5)
        print(f"\n🏥 Health Check: {response.status_code}")
        if response.status_code == 200:
            print("✅ API is responding")
            return True
        print("⚠️ API responded but with non-200 status")
    except requests.exceptions.ConnectionError:
        print(f"❌ Could not connect to the API. Make sure the server is running at {BASE_URL}")
    return False


def check_image_extraction(image_url: str):
    """Extract a palette from an image URL and print the picks"""
    print("\n1️⃣ Testing image extraction...")
    response = requests.get(
        f"{BASE_URL}/api/v1/color-palette/extract",
        params={"image_source": image_url, "quality": "fast"},
        timeout=30,
    )
    print(f"Status Code: {response.status_code}")
    if response.status_code != 200:
        print(f"❌ Extraction failed: {response.text}")
        return

    palette = response.json()
    print(f"✅ Primary: {palette['primary']['hex']}  Secondary: {palette['secondary']['hex']}  Accent: {palette['accent']['hex']}")
    print(f"   Dominant: {[c['hex'] for c in palette['dominant']]}")
    print(f"   Mesh: {palette['gradients']['mesh'][:80]}...")


def check_element_extraction():
    """Extract a palette from element styles"""
    print("\n2️⃣ Testing element extraction...")
    response = requests.post(
        f"{BASE_URL}/api/v1/color-palette/extract/element",
        json={
            "width": 320,
            "height": 200,
            "styles": {
                "color": "rgb(17, 24, 39)",
                "backgroundColor": "rgba(59, 130, 246, 0.4)",
                "boxShadow": "0 4px 30px #f97316",
            },
        },
        timeout=10,
    )
    print(f"Status Code: {response.status_code}")
    if response.status_code == 200:
        print(f"✅ Primary: {response.json()['primary']['hex']}")
    else:
        print(f"❌ Element extraction failed: {response.text}")


def check_cache():
    """Print cache statistics"""
    print("\n3️⃣ Testing cache stats...")
    response = requests.get(f"{BASE_URL}/api/v1/color-palette/cache/stats", timeout=5)
    print(f"Status Code: {response.status_code}")
    print(f"Response: {response.json()}")


if __name__ == "__main__":
    if not check_health():
        sys.exit(1)
    check_image_extraction(sys.argv[1] if len(sys.argv) > 1 else SAMPLE_IMAGE)
    check_element_extraction()
    check_cache()
