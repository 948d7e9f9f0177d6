"""
Sous-package `models` du moteur de pricing d'abonnements.

Il regroupe les estimateurs de signaux consommés par l'optimiseur :
- élasticité-prix de la demande,
- positionnement marché,
- risque de churn,
- analyse des segments de clientèle.
"""
