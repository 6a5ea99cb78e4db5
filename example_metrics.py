from specdiv import coverage, div_hill, div_level, ent_tsallis, richness

'''
Example script explaining how to directly calculate coverage, richness and diversity on observed species counts
'''
#We assume this to be Abundance Data
observed_species = {"A": 10, "B": 5, "C": 2, "D": 2, "E": 1, "F": 1}
abundances = list(observed_species.values())

print("(D0) Asymptotic Species Richness:              " + str(richness(abundances, "Chao1").value))
print("(D0) Jackknife Species Richness:               " + str(richness(abundances).value))
print("(D1) Asymptotic Exponential Shannon Entropy:   " + str(div_hill(abundances, 1, estimator="ChaoJost").value))
print("(D2) Asymptotic Simpson Diversity:             " + str(div_hill(abundances, 2, estimator="ChaoJost").value))
print("(H1) Unveiled Shannon Entropy:                 " + str(ent_tsallis(abundances, 1).value))
print()
print("(C1) Coverage:                                 " + str(coverage(abundances)))
print("(C1) Coverage of twice the sample:             " + str(coverage(abundances, level=42)))
print("(D1) Shannon Diversity at coverage .95:        " + str(div_level(abundances, 1, .95).value))
