'''
NIH institutes
==============

Static lookup of the NIH Institutes and Centers (ICs) which
administer grants, keyed by the two-letter code found in the
:code:`institute` field of the projects table.
'''

import pandas as pd

INSTITUTES = [('AA', 'National Institute on Alcohol Abuse and Alcoholism'),
              ('AG', 'National Institute on Aging'),
              ('AI', 'National Institute of Allergy and Infectious Diseases'),
              ('AR', 'National Institute of Arthritis and Musculoskeletal '
                     'and Skin Diseases'),
              ('AT', 'National Center for Complementary and Integrative '
                     'Health'),
              ('CA', 'National Cancer Institute'),
              ('DA', 'National Institute on Drug Abuse'),
              ('DC', 'National Institute on Deafness and Other '
                     'Communication Disorders'),
              ('DE', 'National Institute of Dental and Craniofacial Research'),
              ('DK', 'National Institute of Diabetes and Digestive and '
                     'Kidney Diseases'),
              ('EB', 'National Institute of Biomedical Imaging and '
                     'Bioengineering'),
              ('ES', 'National Institute of Environmental Health Sciences'),
              ('EY', 'National Eye Institute'),
              ('GM', 'National Institute of General Medical Sciences'),
              ('HD', 'Eunice Kennedy Shriver National Institute of Child '
                     'Health and Human Development'),
              ('HG', 'National Human Genome Research Institute'),
              ('HL', 'National Heart, Lung, and Blood Institute'),
              ('LM', 'National Library of Medicine'),
              ('MD', 'National Institute on Minority Health and Health '
                     'Disparities'),
              ('MH', 'National Institute of Mental Health'),
              ('NR', 'National Institute of Nursing Research'),
              ('NS', 'National Institute of Neurological Disorders and '
                     'Stroke'),
              ('OD', 'Office of the Director'),
              ('RR', 'National Center for Research Resources'),
              ('TR', 'National Center for Advancing Translational Sciences'),
              ('TW', 'John E. Fogarty International Center')]


def nih_institutes():
    """Return the institute lookup as a fresh table with columns
    :code:`institute` and :code:`institute.name`."""
    return pd.DataFrame(INSTITUTES, columns=['institute', 'institute.name'])
