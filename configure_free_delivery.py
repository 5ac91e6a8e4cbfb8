# configure_free_delivery.py
# Enables free delivery on the first store of a region (demo / QA data).
# Usage: python configure_free_delivery.py [region] [threshold]

import os
import sys
from dotenv import load_dotenv
from supabase import create_client, Client

load_dotenv()

DEFAULT_REGION = os.environ.get("DEFAULT_SERVICE_REGION", "Oran")
DEFAULT_THRESHOLD = int(os.environ.get("DEFAULT_FREE_DELIVERY_THRESHOLD", "8000"))


def configure_free_delivery(region: str, threshold: int):
    supabase_url = os.environ.get("SUPABASE_URL")
    supabase_key = os.environ.get("SUPABASE_SERVICE_KEY")

    if not all([supabase_url, supabase_key]):
        print("ERREUR: SUPABASE_URL et SUPABASE_SERVICE_KEY doivent être dans le .env")
        return None

    supabase: Client = create_client(supabase_url, supabase_key)

    print(f"🔍 Recherche d'une boutique à {region}...")
    response = (
        supabase.table("stores")
        .select("id, name, storage_city")
        .eq("storage_city", region)
        .limit(1)
        .execute()
    )
    if not response.data:
        print(f"❌ Aucune boutique trouvée à {region}")
        return None

    store = response.data[0]
    print(f"✅ Boutique trouvée: {store['name']} (ID: {store['id']})")

    print("\n🔧 Activation de la livraison gratuite...")
    updated = (
        supabase.table("stores")
        .update({"offers_free_delivery": True, "free_delivery_threshold": threshold})
        .eq("id", store["id"])
        .execute()
    )
    if not updated.data:
        print("❌ La mise à jour n'a retourné aucune ligne")
        return None

    print("✅ Boutique configurée!")
    print(f"   - offers_free_delivery: True")
    print(f"   - free_delivery_threshold: {threshold} DA")
    print("\n💡 Scénario de test:")
    print(f"   - Ajouter un produit de \"{store['name']}\" à {threshold - 2000} DA")
    print("   - Le panier doit proposer d'ajouter 2000 DA de plus")
    return updated.data[0]


if __name__ == "__main__":
    region = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_REGION
    threshold = int(sys.argv[2]) if len(sys.argv) > 2 else DEFAULT_THRESHOLD
    configure_free_delivery(region, threshold)
