"""
Moteur de pricing dynamique et d'expérimentation pour plans d'abonnement.

Ce package contient :
- la configuration globale du moteur (settings, paramètres de pricing),
- les estimateurs de signaux (élasticité, marché, churn, segments),
- la gestion des tests de prix et leur analyse statistique,
- l'optimiseur de prix, le simulateur de revenu et l'application des prix,
- les interfaces vers la base de données (Supabase) et les fournisseurs externes.
"""
