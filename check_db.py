import os
import psycopg2
from dotenv import load_dotenv

REQUIRED_TABLES = (
    "users",
    "stores",
    "products",
    "variants",
    "orders",
    "order_items",
    "order_delivery_allocations",
    "delivery_fee_configs",
    "platform_settings",
)

print("--- TEST DE CONNEXION DIRECTE ---")

print("1. Chargement du fichier .env...")
load_dotenv()

db_url = os.getenv('DATABASE_URL')

if not db_url:
    print("❌ ERREUR: DATABASE_URL absente ou vide dans le fichier .env!")
else:
    print("✅ DATABASE_URL trouvée.")
    print("\n2. Connexion à la base de données...")

    try:
        conn = psycopg2.connect(db_url)
        print("✅ SUCCÈS! Connexion établie.")

        print("\n3. Vérification des tables utilisées par le calcul des frais...")
        with conn.cursor() as cur:
            cur.execute("""
                SELECT table_name FROM information_schema.tables
                WHERE table_schema = 'public'
            """)
            existing = {row[0] for row in cur.fetchall()}
        for table in REQUIRED_TABLES:
            print(f"   {'✅' if table in existing else '❌'} {table}")

        conn.close()
        print("   Connexion fermée.")
    except Exception as e:
        print("❌ ÉCHEC! Impossible de se connecter à la base de données.")
        print(f"\n   ERREUR DÉTAILLÉE: {e}")

print("\n--- FIN DU TEST DE CONNEXION ---")
