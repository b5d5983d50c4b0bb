"""Messages and choice labels used by the checkout assistant.

All customer-facing text is French. Templates use `str.format` placeholders.
"""

# =============================================================================
# Choice labels
# =============================================================================

QUANTITY_CHOICES = ["1 exemplaire", "2 exemplaires", "3 exemplaires", "🔢 Autre quantité"]
ADDITIONAL_QUANTITY_CHOICES = ["1 exemplaire", "2 exemplaires", "3 exemplaires"]

CHOICE_OTHER_QUANTITY = "🔢 Autre quantité"
CHOICE_KEEP_ADDRESS = "✅ Garder cette adresse"
CHOICE_CHANGE_ADDRESS = "📍 Changer d'adresse"
CHOICE_NO_THANKS = "Non merci"
CHOICE_CONFIRM_ORDER = "✅ Confirmer la commande"
CHOICE_MODIFY_ORDER = "✏️ Modifier la commande"
CHOICE_TRACK_ORDER = "🔍 Suivre ma commande"
CHOICE_OTHER_PRODUCTS = "🛍️ Autres produits"
CHOICE_CONTACT_SUPPORT = "📞 Contacter le support"
CHOICE_TALK_TO_ADVISOR = "Parler à un conseiller"
CHOICE_RESTART = "Recommencer"
CHOICE_CHECK_PAYMENT = "🔄 Vérifier le paiement"
CHOICE_OTHER_PAYMENT = "Choisir un autre moyen de paiement"

PAYMENT_CHOICES = [
    "💰 Wave",
    "🟠 Orange Money",
    "💳 Carte bancaire",
    "🚚 Paiement à la livraison",
]

CONFIRMATION_CHOICES = [CHOICE_TRACK_ORDER, CHOICE_OTHER_PRODUCTS, CHOICE_CONTACT_SUPPORT]

# =============================================================================
# Checkout messages
# =============================================================================

WELCOME = (
    "Bonjour 👋 Je suis {assistant}, votre assistante d'achat. "
    "Vous avez choisi *{product}* à {price}. "
    "Combien d'exemplaires souhaitez-vous commander ?"
)
PRODUCT_UNAVAILABLE = "Désolée, ce produit n'est pas disponible pour le moment."
OUT_OF_STOCK = (
    "Désolée, *{product}* est actuellement en rupture de stock. "
    "Voulez-vous découvrir nos autres jeux ?"
)
ASK_CUSTOM_QUANTITY = "Combien d'exemplaires souhaitez-vous ? (entre 1 et {max})"
INVALID_QUANTITY = "Veuillez indiquer une quantité entre 1 et {max}."
ASK_PHONE = (
    "Parfait, {quantity} exemplaire(s) de *{product}* ! "
    "Quel est votre numéro de téléphone ? (ex : 77 123 45 67)"
)
INVALID_PHONE = (
    "Ce numéro ne semble pas valide. Pouvez-vous le vérifier ? (ex : 77 123 45 67)"
)
WELCOME_BACK = (
    "Ravi de vous revoir {first_name} ! 😊 "
    "Souhaitez-vous être livré(e) à la même adresse : {address}, {city} ?"
)
ASK_NAME = "Merci ! Quel est votre nom complet (prénom et nom) ?"
INVALID_NAME = "Merci d'indiquer votre prénom et votre nom (ex : Awa Diop)."
ASK_ADDRESS = (
    "Enchantée {first_name} ! Quelle est votre adresse de livraison ?\n"
    "Format : Adresse, Ville (ex : Sacré-Cœur 3 Villa 123, Dakar)"
)
INVALID_ADDRESS = "Merci d'indiquer votre adresse au format : Adresse, Ville."
UNDELIVERABLE_CITY = "Je suis navrée 😔 Nous ne livrons malheureusement pas encore à {city}."
DELIVERY_FREE = "Bonne nouvelle, la livraison à {city} est offerte ! 🎉"
DELIVERY_FEE = "La livraison à {city} coûte {fee}."
RECOMMEND_PRODUCTS = (
    "Nos clients qui ont choisi *{product}* aiment aussi ces jeux. "
    "Souhaitez-vous en ajouter un à votre commande ?"
)
ASK_ADDITIONAL_QUANTITY = "Combien d'exemplaires de *{product}* souhaitez-vous ajouter ?"
UNKNOWN_RECOMMENDATION = "Je n'ai pas trouvé ce jeu. Choisissez parmi les suggestions ou répondez « Non merci »."
ORDER_SUMMARY_HEADER = "📋 Récapitulatif de votre commande :"
ORDER_SUMMARY_FOOTER = "Ces informations sont-elles correctes ?"
MODIFY_ORDER = "D'accord, reprenons vos informations. Quel est votre numéro de téléphone ?"
ASK_PAYMENT_METHOD = (
    "Comment souhaitez-vous payer ?\n"
    "⚠️ Les personnes qui payent à l'avance sont prioritaires pour la livraison"
)
UNKNOWN_PAYMENT_METHOD = (
    "Je n'ai pas reconnu ce moyen de paiement. Merci de choisir parmi les options proposées."
)
CASH_ORDER_CONFIRMED = (
    "✅ Votre commande #{order} est confirmée ! Vous paierez {total} à la livraison. "
    "Nous vous contacterons au {phone} pour organiser la livraison."
)
PAYMENT_LINK = (
    "Voici votre lien de paiement {provider} pour un montant de {total} :\n{url}\n"
    "Une fois le paiement effectué, revenez ici pour la confirmation."
)
PAYMENT_PENDING = "Votre paiement est toujours en attente. Vous pouvez le finaliser ici : {url}"
PAYMENT_SUCCESS = (
    "🎉 Paiement reçu ! Votre commande #{order} est confirmée. Merci pour votre confiance !"
)
THANKS = "Merci pour votre commande ! Puis-je vous aider pour autre chose ?"
ORDER_TRACKING = "Votre commande #{order} est actuellement : {status}."
OTHER_PRODUCTS = "Voici d'autres jeux qui pourraient vous plaire :"
NO_OTHER_PRODUCTS = "Tous nos autres jeux sont en cours de réassort, revenez très vite !"
CONTACT_SUPPORT = (
    "Notre équipe est joignable sur WhatsApp au {phone} (https://wa.me/{digits}) "
    "ou par e-mail à {email}."
)
ESCALATED = (
    "Un conseiller va prendre le relais très vite. "
    "Vous pouvez aussi nous écrire sur WhatsApp au {phone}."
)
RESTARTED = "On reprend depuis le début ! Combien d'exemplaires de *{product}* souhaitez-vous ?"
SESSION_EXPIRED = (
    "Votre session a expiré. Rechargez la page du produit pour recommencer votre commande."
)

# System messages appended to a conversation after a payment webhook
PAYMENT_RECEIVED_SYSTEM = "✅ Paiement de {amount} reçu avec succès."
PAYMENT_FAILED_SYSTEM = "❌ Échec du paiement de {amount}."

PROVIDER_LABELS = {
    "stripe": "carte bancaire",
    "wave": "Wave",
    "orange_money": "Orange Money",
    "cash": "paiement à la livraison",
}

ORDER_STATUS_DESCRIPTIONS = {
    "pending": "en attente de paiement",
    "confirmed": "confirmée, en préparation",
    "paid": "payée, en préparation",
    "shipped": "en cours de livraison",
    "delivered": "livrée",
    "cancelled": "annulée",
}


def get_order_status_description(status: str) -> str:
    """Get a customer-friendly order status description."""
    return ORDER_STATUS_DESCRIPTIONS.get(status.lower(), status)


def get_provider_label(provider: str) -> str:
    return PROVIDER_LABELS.get(provider.lower(), provider)
