# Services package.
#
# Each module exposes async functions that encapsulate business logic and
# database access for one aggregate:
#
#   avis_service         — reviews, rating aggregation, moderation
#   admin_service        — statistics, KYC decisions, cash payment validation
#   abonnement_service   — plans, subscriptions, expiry
#   paiement_service     — Wave / cash payments and the Wave webhook
#   prestataire_service  — provider profiles and public search
#   demande_service      — client service requests
#   commande_service     — orders opened from requests
#   catalog_service      — read-only sector / service taxonomy
#   user_service         — the caller's account and the admin user directory
#   file_service         — image uploads
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Business-rule violations raise the exceptions
# of ``vbs.exceptions``.
