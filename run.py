"""
Script de démarrage de l'application
"""
import uvicorn
import asyncio
from app.database import init_db, async_session_maker
from app.services.auth_service import create_user_token, get_user_by_email

# Importer tous les modèles pour que SQLAlchemy puisse résoudre les relations
from app.models import User, UserRole, Resource, ResourceKind


async def create_default_operator():
    """Créer un opérateur et un service par défaut"""
    async with async_session_maker() as db:
        operator = await get_user_by_email(db, "operateur@example.com")
        if not operator:
            operator = User(
                email="operateur@example.com",
                nom="Opérateur",
                prenom="Kiosque",
                role=UserRole.OPERATOR
            )
            db.add(operator)
            db.add(Resource(name="Bibliothèque", kind=ResourceKind.FACILITY, max_capacity=200))
            await db.commit()
            await db.refresh(operator)
            print("✅ Opérateur créé: operateur@example.com")
        else:
            print("ℹ️ Opérateur existe déjà")
        print(f"🔑 Jeton opérateur: {create_user_token(operator)}")


async def main():
    """Initialisation et démarrage"""
    print("🚀 Démarrage de BioVault Identité...")

    # Initialiser la base de données
    await init_db()
    print("✅ Base de données initialisée")

    await create_default_operator()


if __name__ == "__main__":
    # Initialisation
    asyncio.run(main())

    # Démarrer le serveur
    print("\n🌐 Serveur démarré sur http://localhost:8000")
    print("📚 Documentation API: http://localhost:8000/docs\n")

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
